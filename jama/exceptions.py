"""Custom exceptions for JAMA."""


class JamaError(Exception):
    """Base exception for all JAMA errors."""
    
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(JamaError):
    """Raised when an input value is rejected before any calculation runs."""
    
    def __init__(self, field: str, message: str, value=None):
        details = {'field': field}
        if value is not None:
            details['value'] = value
        super().__init__(message, details)
        self.field = field


class DatabaseError(JamaError):
    """Raised when a database operation fails."""
    pass


class TransactionError(DatabaseError):
    """Raised when a database transaction fails to complete."""
    pass


class LoanNotFoundError(JamaError):
    """Raised when a loan cannot be found."""
    
    def __init__(self, loan_id: int = None, user_id: str = None):
        details = {}
        if loan_id is not None:
            details['loan_id'] = loan_id
        if user_id:
            details['user_id'] = user_id
        
        message = "Loan not found"
        if loan_id is not None:
            message = f"Loan {loan_id} not found"
        
        super().__init__(message, details)


class CollectionNotFoundError(JamaError):
    """Raised when a collection (payment) cannot be found."""
    
    def __init__(self, collection_id: int):
        super().__init__(f"Collection {collection_id} not found",
                         {'collection_id': collection_id})


class AdNotFoundError(JamaError):
    """Raised when an ad cannot be found."""
    
    def __init__(self, ad_id: int):
        super().__init__(f"Ad {ad_id} not found", {'ad_id': ad_id})


class ProfileNotFoundError(JamaError):
    """Raised when a user profile cannot be found."""
    
    def __init__(self, user_id: str):
        super().__init__(f"Profile for user '{user_id}' not found", {'user_id': user_id})


class PermissionDeniedError(JamaError):
    """Raised when the acting user lacks the role an operation requires."""
    
    def __init__(self, user_id: str, required_role: str):
        details = {
            'user_id': user_id,
            'required_role': required_role
        }
        message = f"User '{user_id}' requires role '{required_role}'"
        super().__init__(message, details)


class AccountDeactivatedError(JamaError):
    """Raised when a deactivated operator attempts an operation."""
    
    def __init__(self, user_id: str):
        super().__init__(f"Account '{user_id}' is deactivated", {'user_id': user_id})
