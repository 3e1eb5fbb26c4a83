import logging

from black import (
    FileMode,
    InvalidInput,
    format_str as black_format_str,
    NothingChanged as BlackNothingChanged,
)


logger = logging.getLogger(__name__)

BLACK_FORMATTER_MODE = FileMode(line_length=120)


def format_python_code_using_black(filepath, code_string: str) -> str:
    """Formats the given Python code using Black."""
    try:
        formatted_code = black_format_str(code_string, mode=BLACK_FORMATTER_MODE)
        logger.debug(f"Formatted code using Black: {filepath}")
        return formatted_code
    except BlackNothingChanged:
        logger.debug(f"Black formatter did not change the code: {filepath}")
        return code_string
    except InvalidInput as e:
        # A custom template produced code Black cannot parse
        logger.error(f"Could not format Python code using Black: {e}")
        logger.warning(f"Writing unformatted Python code for {filepath} due to Black error.")
        return code_string
