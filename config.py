# Configuration file for invoice generation
from pathlib import Path

# Company Details
COMPANY_NAME = ""
COMPANY_ADDRESS = ""  # use line breaks for multiple lines

# Invoice Settings
HOURLY_RATE = 100.0  # Default hourly rate
BILLING_TERMS = "Net 30"
MEMO = ""  # Default notes printed on every invoice

# Output
# Date tokens (YYYY, YY, MMMM, MMM, MM, DD) are expanded at generation time.
# Wrap literal text in [brackets] to keep it from being expanded.
INVOICE_DIRECTORY = "Invoices/YYYY/MM"
VAULT_DIR = Path(__file__).parent / "vault"
