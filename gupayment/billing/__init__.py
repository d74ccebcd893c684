# gupayment/billing/__init__.py
from flask import Blueprint

billing_bp = Blueprint("billing", __name__, url_prefix="/billing")

from gupayment.billing import routes  # noqa: E402,F401
