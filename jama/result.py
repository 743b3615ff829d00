"""Result pattern for form submissions in JAMA.

Form-facing engine methods return a Result instead of raising, so the
presentation layer can block an invalid submission with an inline
message.
"""
from dataclasses import dataclass
from typing import Any, Optional, TypeVar, Generic

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Represents the outcome of an operation.
    
    Attributes:
        success: Whether the operation succeeded.
        value: The return value on success, None on failure.
        error: Error message on failure, None on success.
        error_type: Type/category of error (e.g., "NOT_FOUND", "VALIDATION").
        field: Name of the offending form field for validation failures.
        
    Usage:
        result = engine.submit_loan_form(form)
        if result.success:
            loan = result.value
        else:
            show_inline_message(result.field, result.error)
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    field: Optional[str] = None
    
    @classmethod
    def ok(cls, value: T = None) -> 'Result[T]':
        """Create a successful result."""
        return cls(success=True, value=value)
    
    @classmethod
    def fail(cls, error: str, error_type: str = None, field: str = None) -> 'Result[T]':
        """Create a failure result.
        
        Args:
            error: Error message describing what went wrong.
            error_type: Optional error category for programmatic handling.
            field: Optional form field the error belongs to.
            
        Returns:
            A Result with success=False and error details.
        """
        return cls(success=False, error=error, error_type=error_type, field=field)
    
    def __bool__(self) -> bool:
        return self.success
    
    def unwrap(self) -> T:
        """Get the value, raising an exception if the operation failed.
        
        Raises:
            ValueError: If the operation failed.
        """
        if not self.success:
            raise ValueError(f"Result unwrap failed: {self.error}")
        return self.value


class ErrorType:
    """Failure categories carried by form results."""
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
