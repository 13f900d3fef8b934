__version__ = "1.0.0"
__description__ = "nested_rest : nested REST endpoints over SQLAlchemy relationships for Flask"
