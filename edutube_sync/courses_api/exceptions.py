# edutube_sync/courses_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class CourseAPIError(Exception):
    """Base exception for courses_api errors."""
    pass

class NetworkUnavailable(CourseAPIError):
    """Raised when the course store cannot be reached (connect/read failure)."""
    pass

class Unauthorized(CourseAPIError):
    """Raised for a missing credential, or a 401/403 from the course store."""
    pass

class NotFound(CourseAPIError):
    """Raised when the requested course identity does not exist remotely."""
    def __init__(self, message: str, course_id: str = None):
        super().__init__(message)
        self.course_id = course_id

class ValidationFailed(CourseAPIError):
    """Raised when the course store rejects a record (missing required fields)."""
    def __init__(self, message: str, required: list = None, received: list = None, response_data: dict = None):
        super().__init__(message)
        self.required = list(required or [])
        self.received = list(received or [])
        self.response_data = response_data or {}

    @property
    def missing_fields(self) -> list:
        return [field for field in self.required if field not in self.received]

class APIResponseError(CourseAPIError):
    """Raised for other non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

#
# End of edutube_sync/courses_api/exceptions.py
########################################################################################################################
