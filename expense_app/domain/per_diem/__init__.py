from .service import PerDiemService, adjusted_mie
