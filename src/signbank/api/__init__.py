from signbank.api.main import create_app
from signbank.api.realtime import create_asgi_app

__all__ = ['create_app', 'create_asgi_app']
