from .service import CurrencyService, currency_symbol, format_amount
