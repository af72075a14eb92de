"""
Pytest configuration file for backend testing.
"""
import os

# Tests run against in-memory SQLite sessions; never touch a configured database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

# Import all models to register them with SQLAlchemy
from hr_platform.modules.staff.models import staff_models  # noqa: E402,F401
from hr_platform.modules.payroll import models as payroll_models  # noqa: E402,F401
