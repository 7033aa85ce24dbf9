import locale
import logging
from unittest.mock import patch

from main import init_collation

# ------------------------- Collation ------------------------- #

def test_init_collation_adopts_user_locale():
    with patch("main.locale.setlocale") as setlocale:
        assert init_collation() is True
    setlocale.assert_called_once_with(locale.LC_COLLATE, "")


def test_init_collation_falls_back_with_warning(caplog):
    with patch("main.locale.setlocale", side_effect=locale.Error("unsupported locale setting")):
        with caplog.at_level(logging.WARNING, logger="test"):
            assert init_collation(logging.getLogger("test")) is False
    assert "code point" in caplog.text
