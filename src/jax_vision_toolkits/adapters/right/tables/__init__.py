from .columnar import ColumnarTable

__all__ = [
	"ColumnarTable",
]
