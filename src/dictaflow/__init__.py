__app_name__ = "DictaFlow"
__version__ = "0.3.0"
