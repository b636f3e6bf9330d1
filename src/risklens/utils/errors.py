from __future__ import annotations
from typing import List, Optional


class RiskLensError(Exception):
    """Base class for every error raised by the analysis pipeline."""


class ConfigurationError(RiskLensError):
    pass


class InputValidationError(RiskLensError):
    pass


class ModelInvocationError(RiskLensError):
    def __init__(self, code: str, message: str, attempts: int = 1):
        super().__init__(message)
        self.code = code
        self.message = message
        self.attempts = attempts


class ParsingError(RiskLensError):
    pass


class ExtractionFailed(ParsingError):
    def __init__(self, message: str = "No extraction strategy produced a JSON object"):
        super().__init__(message)


class ValidationError(ParsingError):
    def __init__(self, message: str, issues: Optional[List] = None):
        super().__init__(message)
        self.issues = list(issues or [])


class TemplateNotFound(RiskLensError):
    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class TemplateDisabled(RiskLensError):
    def __init__(self, template_id: str):
        super().__init__(f"Template is disabled: {template_id}")
        self.template_id = template_id


class PromptTooLong(RiskLensError):
    def __init__(self, actual: int, maximum: int):
        super().__init__(f"Prompt too long: {actual} characters (max: {maximum})")
        self.actual = actual
        self.maximum = maximum
