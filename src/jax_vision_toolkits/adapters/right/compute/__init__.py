from .context import JaxComputeContext, create_compute_context
from .drawing_classifier import JaxDrawingClassifierBackend
from .style_transfer import JaxStyleTransferBackend

__all__ = [
	"JaxComputeContext",
	"JaxDrawingClassifierBackend",
	"JaxStyleTransferBackend",
	"create_compute_context",
]
