from .service import ReportService
