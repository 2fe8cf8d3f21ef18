from .safetensors_exporter import SafetensorsExportedModel, SafetensorsModelExporter

__all__ = [
	"SafetensorsExportedModel",
	"SafetensorsModelExporter",
]
