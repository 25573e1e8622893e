from .service import MileageService, total_miles, trip_stats
