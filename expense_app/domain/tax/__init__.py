from .service import TaxService, format_tax_rate, net_from_gross, tax_from_gross, tax_from_net
