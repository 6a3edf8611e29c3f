__version__ = "0.4.2"
__description__ = "sqla_ctrl : generic Flask REST controllers for SQLAlchemy models"
