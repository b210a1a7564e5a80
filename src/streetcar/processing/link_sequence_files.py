import logging
import pathlib
import shutil

from streetcar.errors import FilesystemFailure
from streetcar.sequence import Sequence

logger = logging.getLogger(__name__)


def sequence_folder(root: pathlib.Path, sequence_index: int) -> pathlib.Path:
    return root / f"sequence{sequence_index}"


def clear_sequence_folders(root: pathlib.Path) -> int:
    """Remove ``sequence*`` folders left by a previous run."""
    removed = 0
    for folder in sorted(root.glob("sequence*")):
        if not folder.is_dir() or folder.is_symlink():
            continue
        try:
            shutil.rmtree(folder)
        except OSError as exc:
            raise FilesystemFailure(f"Cannot remove {folder}: {exc}") from exc
        removed += 1

    if removed:
        logger.debug("Removed %d stale sequence folder(s)", removed)
    return removed


def link_sequence_files(sequence: Sequence, root: pathlib.Path) -> list[pathlib.Path]:
    """Symlink the sequence's surviving images into ``sequence<s>/<camera>/<container>/``."""
    links: list[pathlib.Path] = []
    for camera, track in sequence.tracks.items():
        for image in track.files:
            link = sequence_folder(root, sequence.index) / camera / image.parent.name / image.name
            try:
                link.parent.mkdir(parents=True, exist_ok=True)
                if link.is_symlink() or link.exists():
                    link.unlink()
                link.symlink_to(image.resolve())
            except OSError as exc:
                raise FilesystemFailure(f"Cannot link {image} to {link}: {exc}") from exc
            links.append(link)

    logger.debug("sequence%d: linked %d file(s)", sequence.index, len(links))
    return links
