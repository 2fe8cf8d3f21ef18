from .checkpoint_store import Checkpoint, CheckpointStorePort
from .compute_backend import ComputeBackendPort, ComputeContextFactory, ComputeContextPort
from .dataset_table import TabularDataPort
from .metrics_sink import MetricsSinkPort
from .model_exporter import ExportedModel, ModelExporterPort

__all__ = [
	"Checkpoint",
	"CheckpointStorePort",
	"ComputeBackendPort",
	"ComputeContextFactory",
	"ComputeContextPort",
	"ExportedModel",
	"MetricsSinkPort",
	"ModelExporterPort",
	"TabularDataPort",
]
