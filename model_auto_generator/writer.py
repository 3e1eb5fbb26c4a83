import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from model_auto_generator.constants import FileKinds
from model_auto_generator.exceptions import WriterError


logger = logging.getLogger(__name__)


def _empty_directory(directory: Path) -> None:
    """Remove everything inside ``directory``, keeping the directory itself."""
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
    logger.debug(f"Emptied directory {directory}")


def prepare_directory(path: Path, empty: bool = False) -> None:
    """Create ``path`` if needed and optionally clear its contents."""
    if path.exists() and not path.is_dir():
        raise WriterError(f"Output path exists but is not a directory: {path}", path=str(path))
    try:
        path.mkdir(parents=True, exist_ok=True)
        if empty:
            _empty_directory(path)
    except OSError as e:
        raise WriterError(f"Could not prepare directory {path}: {e}", path=str(path)) from e


def write_files(
    files: Iterable,
    dir: str,
    types_dir: Optional[str] = None,
    empty_dir: bool = False,
) -> List[Path]:
    """
    Write rendered files to disk.

    Model and package files go to ``dir``; typings go to ``types_dir`` (or
    ``dir`` when it is not given). Files are written as UTF-8, overwriting
    existing ones.

    Args:
        files: RenderedFile objects
        dir: Directory for model files
        types_dir: Directory for typings
        empty_dir: Remove existing directory contents first

    Returns:
        Paths written, in the order of ``files``

    Raises:
        WriterError: On any filesystem failure
    """
    model_dir = Path(dir)
    typings_dir = Path(types_dir) if types_dir else model_dir

    prepare_directory(model_dir, empty=empty_dir)
    if typings_dir.resolve() != model_dir.resolve():
        prepare_directory(typings_dir, empty=empty_dir)

    written: List[Path] = []
    for rendered in files:
        target_dir = typings_dir if rendered.kind == FileKinds.TYPINGS else model_dir
        output_path = target_dir / rendered.file_name
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(rendered.code)
        except OSError as e:
            raise WriterError(f"Could not write {output_path}: {e}", path=str(output_path)) from e
        logger.debug(f"Generated file: {output_path}")
        written.append(output_path)

    logger.info(f"Wrote {len(written)} file(s) to {model_dir}")
    return written
