from __future__ import annotations

from dataclasses import asdict
import os
from functools import partial
from typing import Optional

import inject
import typer
import numpy as np

# Default to CPU unless explicitly overridden by the user.
# This avoids noisy CUDA plugin initialization errors on machines without CUDA libraries.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

from jax_vision_toolkits.adapters.left.inject_config import configure_injections
from jax_vision_toolkits.adapters.right.checkpoints_filesystem import FilesystemCheckpointStore, load_params_file
from jax_vision_toolkits.adapters.right.compute.context import create_compute_context
from jax_vision_toolkits.adapters.right.exporters.safetensors_exporter import SafetensorsModelExporter
from jax_vision_toolkits.adapters.right.metrics_jsonl import CompositeMetricsSink, JsonlFileMetricsSink
from jax_vision_toolkits.adapters.right.metrics_stdout import StdoutMetricsSink
from jax_vision_toolkits.adapters.right.tables.columnar import ColumnarTable
from jax_vision_toolkits.core.domain.commands.train import DrawingClassifierCommand, StyleTransferCommand
from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.ports.metrics_sink import MetricsSinkPort
from jax_vision_toolkits.core.use_cases.drawing_classifier import DrawingClassifierUseCase
from jax_vision_toolkits.core.use_cases.style_transfer import StyleTransferUseCase

app = typer.Typer(add_completion=False, no_args_is_help=True)


def _metrics_sink(log_path: str, run_name: str) -> MetricsSinkPort:
    stdout_metrics = StdoutMetricsSink()
    return (
        CompositeMetricsSink(stdout_metrics, JsonlFileMetricsSink(path=log_path, run_name=run_name))
        if log_path
        else stdout_metrics
    )


def _configure(*, run_name: str, log_path: str, ckpt_dir: str, platform: str) -> MetricsSinkPort:
    metrics = _metrics_sink(log_path, run_name)
    configure_injections(
        compute_context_factory=partial(create_compute_context, platform or None),
        metrics_sink=metrics,
        checkpoint_store=FilesystemCheckpointStore(dir_path=ckpt_dir) if ckpt_dir else None,
        model_exporter=SafetensorsModelExporter(),
        weights_loader=load_params_file,
    )
    return metrics


@app.command(name="drawing-classifier")
def drawing_classifier(
    npz_path: str = typer.Option(..., help="Path to .npz with one array per column (drawings and labels)"),
    target: str = typer.Option("label", help="Name of the class label column"),
    feature: str = typer.Option("drawing", help="Name of the drawing column"),
    valid_npz_path: str = typer.Option(
        "", help="Optional .npz used as validation data (default: 5% holdout when the data has >= 100 rows)"
    ),
    no_validation: bool = typer.Option(False, "--no-validation", help="Disable validation"),
    batch_size: int = typer.Option(256, min=1),
    max_iterations: int = typer.Option(500, min=1, help="Number of epochs over the training data"),
    lr: float = typer.Option(1e-3),
    seed: Optional[int] = typer.Option(None, help="Weight initialization and shuffling seed"),
    height: int = typer.Option(28, min=1),
    width: int = typer.Option(28, min=1),
    channels: int = typer.Option(1, min=1),
    ckpt_dir: str = typer.Option("", help="If set, save the trained model to this folder"),
    export_path: str = typer.Option("", help="If set, export the trained model (.safetensors) to this path"),
    log_path: str = typer.Option(
        "",
        help="If set, append metrics/events as JSONL to this path (e.g. logs/drawing.jsonl)",
    ),
    platform: str = typer.Option("", help="JAX platform to train on (cpu, gpu); default picks the first available"),
) -> None:
    """Train the drawing classifier on bitmaps stored in an .npz file."""

    try:
        cmd = DrawingClassifierCommand(
            target=target,
            feature=feature,
            batch_size=batch_size,
            max_iterations=max_iterations,
            random_seed=seed,
            learning_rate=lr,
            image_shape=(height, width, channels),
        )
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    data = ColumnarTable.from_npz(npz_path)
    if no_validation:
        validation_data = None
    elif valid_npz_path:
        validation_data = ColumnarTable.from_npz(valid_npz_path)
    else:
        validation_data = "auto"

    _configure(run_name="drawing-classifier", log_path=log_path, ckpt_dir=ckpt_dir, platform=platform)
    use_case = inject.instance(DrawingClassifierUseCase)

    result = use_case.run(cmd, data=data, validation_data=validation_data)
    typer.echo("Training complete")
    typer.echo(f"Final epoch summary: {result.history[-1] if result.history else {}}")
    typer.echo(f"Training accuracy: {result.state.get('training_accuracy')}")
    if "validation_accuracy" in result.state:
        typer.echo(f"Validation accuracy: {result.state['validation_accuracy']}")

    if ckpt_dir:
        use_case.save()
        typer.echo(f"Saved model to: {ckpt_dir}")
    if export_path:
        use_case.export_model(export_path)
        typer.echo(f"Exported model to: {export_path}")
    typer.echo(f"Train command: {asdict(cmd)}")


@app.command(name="style-transfer")
def style_transfer(
    npz_path: str = typer.Option(..., help="Path to .npz holding `style` (S, H, W, 3) and `content` (N, H, W, 3) images"),
    vgg_weights: str = typer.Option(..., help="safetensors file with VGG-16 weights"),
    transformer_weights: str = typer.Option("", help="Optional safetensors file to warm start the transformer"),
    batch_size: Optional[int] = typer.Option(None, min=1),
    max_iterations: Optional[int] = typer.Option(None, min=1, help="Number of batches (default: num_styles * 10000 / batch_size)"),
    image_width: Optional[int] = typer.Option(None, min=1),
    image_height: Optional[int] = typer.Option(None, min=1),
    content_weight: float = typer.Option(1.0),
    style_weight: float = typer.Option(5.0),
    lr: float = typer.Option(1e-3),
    seed: Optional[int] = typer.Option(None),
    ckpt_dir: str = typer.Option("", help="If set, save the trained model to this folder"),
    export_path: str = typer.Option("", help="If set, export the trained transformer (.safetensors) to this path"),
    log_path: str = typer.Option("", help="If set, append metrics/events as JSONL to this path"),
    platform: str = typer.Option("", help="JAX platform to train on (cpu, gpu); default picks the first available"),
) -> None:
    """Train a style transfer model on style and content images stored in an .npz file."""

    with np.load(npz_path) as arrays:
        missing = {"style", "content"} - set(arrays.files)
        if missing:
            raise typer.BadParameter(f"{npz_path} is missing arrays: {sorted(missing)}")
        style = list(np.asarray(arrays["style"]))
        content = list(np.asarray(arrays["content"]))

    try:
        cmd = StyleTransferCommand(
            num_styles=len(style),
            vgg_weights_path=vgg_weights,
            transformer_weights_path=transformer_weights,
            batch_size=batch_size,
            max_iterations=max_iterations,
            image_width=image_width,
            image_height=image_height,
            random_seed=seed,
            content_weight=content_weight,
            style_weight=style_weight,
            learning_rate=lr,
        )
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    _configure(run_name="style-transfer", log_path=log_path, ckpt_dir=ckpt_dir, platform=platform)
    use_case = inject.instance(StyleTransferUseCase)

    result = use_case.run(cmd, style=style, content=content)
    typer.echo("Training complete")
    typer.echo(f"Final iteration: {result.history[-1] if result.history else {}}")

    if ckpt_dir:
        use_case.save()
        typer.echo(f"Saved model to: {ckpt_dir}")
    if export_path:
        use_case.export_model(export_path)
        typer.echo(f"Exported model to: {export_path}")
