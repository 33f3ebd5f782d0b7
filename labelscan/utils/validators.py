"""
==============================================================================
Validation Utilities Module
==============================================================================

Validation classes for values entered outside the decode loop.

This module implements:
- ManualValueValidator: Validates operator-typed label values

Validation Rules for Manual Values:
----------------------------------
- Leading/trailing whitespace is removed
- Length: at least the configured minimum (default 5)
- Optional pattern, when one is configured for the deployment

==============================================================================
"""

from __future__ import annotations

import re
from typing import Optional, Tuple


class ManualValueValidator:
    """
    Validator for manually entered label values.
    
    Example:
        >>> validator = ManualValueValidator(min_length=5)
        >>> is_valid, normalized, error = validator.validate("  4006381333931 ")
        >>> print(normalized)
        '4006381333931'
    """
    
    def __init__(self, min_length: int = 5, pattern: Optional[str] = None) -> None:
        self.min_length = min_length
        self._pattern = re.compile(pattern) if pattern else None
    
    def validate(self, value: str) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate and normalize a manual value.
        
        Args:
            value: Raw operator input
            
        Returns:
            Tuple of (is_valid, normalized_value, error_message)
        """
        normalized = str(value or "").strip()
        
        if not normalized:
            return False, None, "Value is required"
        
        if len(normalized) < self.min_length:
            return False, None, f"Value too short (minimum {self.min_length} characters)"
        
        if self._pattern is not None and not self._pattern.fullmatch(normalized):
            return False, None, "Value does not match the required pattern"
        
        return True, normalized, None
