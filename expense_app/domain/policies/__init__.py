from .service import PolicyService
