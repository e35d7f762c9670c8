from fastapi import HTTPException


class AuthException(HTTPException):
    def __init__(self, detail: str = "Authorization header required"):
        super().__init__(status_code=401, detail=detail)


class FolderNotConfiguredException(HTTPException):
    def __init__(self, detail: str = "Folder ID not configured"):
        super().__init__(status_code=500, detail=detail)


class CredentialsNotConfiguredException(HTTPException):
    def __init__(self, detail: str = "Drive credentials not configured"):
        super().__init__(status_code=500, detail=detail)


class FormParseException(HTTPException):
    def __init__(self, detail: str = "Error parsing form data"):
        super().__init__(status_code=500, detail=detail)


class NoFileException(HTTPException):
    def __init__(self, detail: str = "No file uploaded"):
        super().__init__(status_code=400, detail=detail)


class DriveApiException(HTTPException):
    def __init__(self, detail: str = "Drive API error"):
        super().__init__(status_code=500, detail=detail)
