"""
Run Logger - Markdown audit log for one opt-out session

Provides:
- Table of Contents with one entry per broker
- Key/value lines per workflow phase
- Embedded evidence screenshots
- Diagnoses as JSON blocks
- Final summary table
"""

import json
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence


class RunLogger:
    """
    Markdown run logger (with TOC and images).

    Usage:
        run_logger = RunLogger(brokers=["Spokeo", "Radaris"], log_dir="./logs")
        run_logger.log_heading("Spokeo")
        run_logger.log_kv("phase", "search")
        run_logger.log_image("screenshots/failure-Spokeo.png", "Spokeo failure")
    """

    _TOC_START = "<!-- TOC -->"
    _TOC_END = "<!-- /TOC -->"

    def __init__(
        self,
        brokers: Optional[Sequence[str]] = None,
        user_name: Optional[str] = None,
        command_line: Optional[str] = None,
        log_dir: str = "./logs",
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or datetime.now().strftime('%Y%m%d-%H%M%S')
        self.dir = Path(log_dir)
        self.dir.mkdir(parents=True, exist_ok=True)
        self.path = self.dir / f'run-{self.session_id}.md'
        self._toc: List[str] = []

        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(f"# Opt-out Run Log ({self.session_id})\n\n")
            f.write("## Navigation\n\n")
            f.write(f"{self._TOC_START}\n(no sections yet)\n{self._TOC_END}\n\n")
            if command_line:
                f.write(f"```bash\n{command_line}\n```\n\n")
            if user_name:
                f.write(f"- **User**: {user_name}\n")
            if brokers:
                f.write(f"- **Brokers**: {', '.join(brokers)}\n\n")

    def _write(self, text: str):
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(text)

    def log_heading(self, text: str):
        """Log a section heading with TOC entry."""
        self._write("\n---\n\n")
        self._write(f"## {text}\n\n")
        self._toc.append(text)
        self._update_toc()

    def log_text(self, text: str):
        self._write(f"{text}\n\n")

    def log_kv(self, key: str, value: Any):
        self._write(f"- {key}: {value}\n")

    def log_code(self, lang: str, code: str):
        self._write(f"```{lang}\n{code}\n```\n\n")

    def log_image(self, image_path: str, alt: str = ""):
        """Embed an image with a path relative to the log directory."""
        try:
            img = Path(image_path)
            rel = os.path.relpath(img.resolve(), start=self.dir.resolve())
            self._write(f"\n![{alt or img.name}]({rel})\n\n")
        except (OSError, ValueError):
            self.log_text(f"Screenshot: {image_path}")

    def log_table(self, headers: List[str], rows: List[List[Any]], title: str = ""):
        if title:
            self._write(f"### {title}\n\n")
        if not headers or not rows:
            return

        col_widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                if i < len(col_widths):
                    col_widths[i] = max(col_widths[i], len(str(cell)))

        self._write("| " + " | ".join(h.ljust(col_widths[i]) for i, h in enumerate(headers)) + " |\n")
        self._write("|" + "|".join("-" * (w + 2) for w in col_widths) + "|\n")
        for row in rows:
            padded = list(row) + [""] * (len(headers) - len(row))
            cells = (str(c).replace("|", "\\|").ljust(col_widths[i]) for i, c in enumerate(padded[:len(headers)]))
            self._write("| " + " | ".join(cells) + " |\n")
        self._write("\n")

    def log_json(self, data: Any, title: str = "Data"):
        self._write(f"### {title}\n\n")
        self._write(f"```json\n{json.dumps(data, indent=2, ensure_ascii=False, default=str)}\n```\n\n")

    def log_success(self, message: str):
        self._write(f"\n✅ **SUCCESS:** {message}\n\n")

    def log_error(self, message: str):
        self._write(f"\n❌ **ERROR:** {message}\n\n")

    def log_warning(self, message: str):
        self._write(f"\n⚠️ **WARNING:** {message}\n\n")

    def finalize(self, successful: int, failed: int, duration_s: float = 0.0,
                 rows: Optional[List[List[Any]]] = None):
        """
        Finalize the log with a summary.

        Args:
            successful: Number of successful removals
            failed: Number of failed removals
            duration_s: Total run time in seconds
            rows: Optional per-broker rows [broker, status, reason]
        """
        self.log_heading("Summary")
        self._write(f"**Successful:** {successful}\n")
        self._write(f"**Failed:** {failed}\n")
        self._write(f"**Duration:** {duration_s:.1f}s\n\n")
        if rows:
            self.log_table(["Broker", "Status", "Reason"], rows)

    # --- Helpers ---
    def _slugify(self, text: str) -> str:
        s = text.strip().lower()
        s = re.sub(r"[^a-z0-9\s-]", "", s)
        s = re.sub(r"\s+", "-", s)
        return s

    def _update_toc(self):
        with open(self.path, 'r', encoding='utf-8') as fr:
            content = fr.read()
        toc_md = "\n".join(f"- [{title}](#{self._slugify(title)})" for title in self._toc)
        start = content.find(self._TOC_START)
        end = content.find(self._TOC_END)
        if start == -1 or end == -1:
            return
        content = content[:start + len(self._TOC_START)] + "\n" + toc_md + "\n" + content[end:]
        with open(self.path, 'w', encoding='utf-8') as fw:
            fw.write(content)

    @property
    def log_path(self) -> str:
        return str(self.path)


def create_run_logger(
    brokers: Optional[Sequence[str]] = None,
    user_name: Optional[str] = None,
    command_line: Optional[str] = None,
    log_dir: str = "./logs"
) -> RunLogger:
    """Create a new run logger instance"""
    return RunLogger(
        brokers=brokers,
        user_name=user_name,
        command_line=command_line,
        log_dir=log_dir
    )
