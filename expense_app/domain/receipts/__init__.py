from .service import ReceiptService, validate_receipt_file
