from .service import AuthService
