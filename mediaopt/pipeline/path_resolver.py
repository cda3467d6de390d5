from pathlib import Path
from mediaopt.config.models import RunConfig
from mediaopt.domain.models import MediaKind

VIDEO_OUTPUT_EXTENSION = "mp4"
CONVERTED_IMAGE_EXTENSION = "webp"
DEFAULT_EXTENSION = "jpg"


def output_extension(input_path: Path, config: RunConfig) -> str:
    kind = MediaKind.from_path(input_path)
    if kind == MediaKind.VIDEO:
        return VIDEO_OUTPUT_EXTENSION
    if config.convert_to_webp:
        return CONVERTED_IMAGE_EXTENSION
    return input_path.suffix.lstrip(".") or DEFAULT_EXTENSION


def resolve_output_path(input_path: Path, input_root: Path, config: RunConfig) -> Path:
    """Maps an input file to where its result belongs. Creates nothing.

    With an output root the directory structure below input_root is kept. A
    file that is not below input_root lands in a directory named after its
    immediate parent, so it still gets a deterministic location.
    Without an output root the result sits next to the input.
    """
    filename = f"{input_path.stem}.{output_extension(input_path, config)}"

    if config.output_dir is None:
        return input_path.with_name(filename)

    canonical_root = Path(input_root).resolve()
    canonical_output = Path(config.output_dir).resolve()
    try:
        relative_dir = input_path.relative_to(canonical_root).parent
    except ValueError:
        relative_dir = Path(input_path.parent.name)

    return canonical_output / relative_dir / filename
