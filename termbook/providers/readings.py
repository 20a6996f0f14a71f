"""
Reading providers: segment text and derive phonetic readings.

The janome provider uses a bundled Japanese morphological dictionary and
yields katakana readings. The simple provider splits by script and never
yields readings; it needs no dictionary and is always ready.
"""

import logging
import re
import threading
from typing import Any, Optional

from .base import Unit, get_registry

logger = logging.getLogger(__name__)

# janome marks unknown readings with an asterisk
_NO_READING = "*"

# Runs of hiragana, katakana (incl. prolonged sound mark), kanji, or other word chars
_SCRIPT_RUN_RE = re.compile(
    r"[ぁ-ゟ]+"
    r"|[゠-ヿ]+"
    r"|[一-鿿々〆]+"
    r"|[^\W_ぁ-ゟ゠-ヿ一-鿿々〆]+"
)


class JanomeReadingProvider:
    """
    Morphological segmentation with readings, backed by janome.

    Loading the dictionary takes noticeable time, so it happens in
    ``load()`` rather than at construction unless ``load_now`` is set.
    """

    def __init__(self, load_now: bool = False, user_dict: Optional[str] = None, **kwargs: Any):
        self._user_dict = user_dict
        self._tokenizer = None
        self._lock = threading.Lock()
        if load_now:
            self.load()

    @property
    def ready(self) -> bool:
        return self._tokenizer is not None

    def load(self) -> None:
        with self._lock:
            if self._tokenizer is not None:
                return
            from janome.tokenizer import Tokenizer

            logger.debug("Loading janome dictionary")
            if self._user_dict:
                self._tokenizer = Tokenizer(self._user_dict, udic_enc="utf8")
            else:
                self._tokenizer = Tokenizer()

    def segment(self, text: str) -> list[Unit]:
        if self._tokenizer is None:
            raise RuntimeError("janome dictionary not loaded")
        units = []
        for token in self._tokenizer.tokenize(text):
            reading = getattr(token, "reading", _NO_READING)
            if not reading or reading == _NO_READING:
                reading = None
            units.append(Unit(token.surface, reading))
        return units


class SimpleSegmenter:
    """Split text into runs of a single script. No readings."""

    ready = True

    def __init__(self, **kwargs: Any):
        pass

    def load(self) -> None:
        pass

    def segment(self, text: str) -> list[Unit]:
        return [Unit(m.group(0)) for m in _SCRIPT_RUN_RE.finditer(text)]


# Register providers
_registry = get_registry()
_registry.register_reading("janome", JanomeReadingProvider)
_registry.register_reading("simple", SimpleSegmenter)
