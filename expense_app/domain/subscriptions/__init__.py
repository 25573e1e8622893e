from .service import SubscriptionService, annual_savings, compute_usage_limits, format_price
