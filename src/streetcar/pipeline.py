"""
End-to-end run: discover → extract → assemble → segment → build → emit.

Extraction is the only concurrent stage. Everything after the extraction
barrier is single-threaded and works on the finished result set.
"""

from __future__ import annotations

import logging
import pathlib
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from streetcar.capture_data import FeatureCollection, ImageRecord
from streetcar.config import StreetcarConfig
from streetcar.geojson import (
    build_feature_collection,
    clear_feature_collections,
    write_feature_collection,
)
from streetcar.processing.extract_image_metadata import (
    ExtractionResultSet,
    Extractor,
    extract_all,
    read_image_record,
)
from streetcar.processing.find_image_sources import find_image_files
from streetcar.processing.link_sequence_files import (
    clear_sequence_folders,
    link_sequence_files,
)
from streetcar.sequence import Sequence, build_sequences, segment
from streetcar.timeline import assemble

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    extraction: ExtractionResultSet
    sequences: list[Sequence] = field(default_factory=list)
    collections: list[FeatureCollection] = field(default_factory=list)
    written: list[pathlib.Path] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no usable image was found at all."""
        return self.extraction.is_empty


def process_records(
    records: Iterable[ImageRecord], config: StreetcarConfig
) -> list[Sequence]:
    """Run the single-threaded core over a finished set of records."""
    timeline = assemble(records, config.utc_offset)
    spans = segment(timeline.keys, config.CUT_SEQUENCE_MS)
    logger.info(
        "Timeline: %d instant(s) from %d camera(s) cut into %d sequence(s)",
        len(timeline),
        len(timeline.cameras),
        len(spans),
    )
    return build_sequences(
        timeline,
        spans,
        min_speed_kph=config.MIN_SPEED_KPH,
        infer_coordinates=config.INFER_COORDINATES,
        inferred_offset=config.INFERRED_COORD_OFFSET,
    )


def run(config: StreetcarConfig, extractor: Extractor = read_image_record) -> RunResult:
    """Process the camera folders under ``config.ROOT``.

    Raises
    ------
    FilesystemFailure
        When an output file, folder or symlink cannot be created.
    """
    t_total = time.monotonic()
    root = config.ROOT

    files = find_image_files(root)
    extraction = extract_all(
        files,
        extractor,
        max_workers=config.MAX_WORKERS,
        timeout_s=config.EXTRACT_TIMEOUT_S,
    )
    result = RunResult(extraction=extraction)
    clear_feature_collections(config.GEOJSON_DIR)
    if extraction.is_empty:
        logger.warning("No usable images found in %s", root)
        return result

    result.sequences = process_records(extraction.records.values(), config)

    if config.LINK_FILES:
        clear_sequence_folders(root)

    for sequence in result.sequences:
        collection = build_feature_collection(sequence, root)
        if collection is None:
            continue
        result.collections.append(collection)
        result.written.append(
            write_feature_collection(collection, config.geojson_path(sequence.index))
        )
        if config.LINK_FILES:
            link_sequence_files(sequence, root)

    logger.info(
        "Wrote %d collection(s) in %.1f s", len(result.written), time.monotonic() - t_total
    )
    return result
