from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inbox.api import create_app
from inbox.config import load_settings
from inbox.logging_setup import configure_logging
from inbox.service import build_service

settings = load_settings()
configure_logging(settings.log_level)

app = create_app(build_service(settings))

handler = Mangum(app)
