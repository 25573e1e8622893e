from .service import VendorService
