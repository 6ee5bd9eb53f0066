import logging
import os
import tempfile
from pathlib import Path

from study_notes.notes.document import slugify

logger = logging.getLogger(__name__)


class NoteWriter:
    """Writes rendered notes to `<output_dir>/<topic-slug>.md`."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)

    def path_for(self, topic: str) -> Path:
        return self.output_dir / f"{slugify(topic)}.md"

    def write(self, topic: str, markdown: str) -> Path:
        path = self.path_for(topic)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(markdown)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("notes.written path=%s chars=%d", path, len(markdown))
        return path
