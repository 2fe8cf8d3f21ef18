from .drawing_classifier import build_drawing_classifier_spec
from .spec import LayerSpec, TopologySpec
from .style_transfer import build_transformer_spec, build_vgg16_spec

__all__ = [
    "LayerSpec",
    "TopologySpec",
    "build_drawing_classifier_spec",
    "build_transformer_spec",
    "build_vgg16_spec",
]
