import json
from pathlib import Path
from typing import Optional

import config

L10N_DIR = Path(__file__).resolve().parent.parent / "l10n"


class Localizator:

    @staticmethod
    def get_text(key: str, section: str = "errors", lang: Optional[str] = None) -> str:
        """
        Get localized text for given section and key.

        Args:
            key: Localization key
            section: Top level section of the localization file
            lang: Optional language code (e.g., "de", "en").
                  If None, uses config.UI_LANGUAGE (default).

        Returns:
            Localized text string
        """
        language = lang if lang is not None else config.UI_LANGUAGE
        localization_file = L10N_DIR / f"{language}.json"

        with open(localization_file, "r", encoding="UTF-8") as f:
            data = json.loads(f.read())
            return data[section][key]
