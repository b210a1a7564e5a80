import logging
import os
import pathlib

from streetcar.capture_data import CAMERA_FOLDER_NAMES, Camera

logger = logging.getLogger(__name__)

# Folders written by streetcar itself; never scanned for images
_GENERATED_PREFIXES = (".streetcar", "sequence")


def camera_from_path(path: pathlib.Path, root: pathlib.Path | None = None) -> Camera | None:
    """Return the camera whose folder contains *path*.

    The innermost folder named after a camera wins. Paths inside generated
    folders (``.streetcar``, ``sequence*``) belong to no camera.
    """
    parts = path.relative_to(root).parts if root is not None else path.parts
    folders = [part.lower() for part in parts[:-1]]

    if any(f.startswith(_GENERATED_PREFIXES) for f in folders):
        return None

    for folder in reversed(folders):
        if folder in CAMERA_FOLDER_NAMES:
            return CAMERA_FOLDER_NAMES[folder]
    return None


def find_camera_folders(root: pathlib.Path) -> list[pathlib.Path]:
    return sorted(
        p for p in root.iterdir() if p.is_dir() and p.name.lower() in CAMERA_FOLDER_NAMES
    )


def find_image_files(root: pathlib.Path) -> list[tuple[pathlib.Path, Camera]]:
    """List every regular file below the camera folders of *root*, path-sorted."""
    folders = find_camera_folders(root)
    if not folders:
        logger.warning("No front/back/rear/left/right folders found in %s", root)
        return []

    found: list[tuple[pathlib.Path, Camera]] = []
    for folder in folders:
        logger.debug("Scanning %s", folder.name)
        for dirpath, dirnames, filenames in os.walk(folder):
            dirnames.sort()
            for filename in sorted(filenames):
                path = pathlib.Path(dirpath) / filename
                if not path.is_file():
                    continue
                camera = camera_from_path(path, root)
                if camera is not None:
                    found.append((path, camera))

    cameras = sorted({camera for _, camera in found}, key=list(Camera).index)
    logger.info(
        "Found %d file(s) from %d camera(s): %s",
        len(found),
        len(cameras),
        ", ".join(cameras),
    )
    return sorted(found, key=lambda item: str(item[0]))
