from devproxy.config import ServerConfig
from devproxy.factory import create_app

config = ServerConfig.from_env()
app = create_app(config)
