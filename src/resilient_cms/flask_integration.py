"""
Integração opcional com Flask.

Fornece uma fachada para inicialização via app.config e
registro em app.extensions.
"""

from typing import Optional, cast

from flask import Flask

from .config import ProviderSettings
from .content_service import ContentService


class FlaskContentService(ContentService):
    """
    Fachada de conteúdo para aplicações Flask.

    Example:
        >>> from flask import Flask
        >>> from resilient_cms.flask_integration import FlaskContentService
        >>>
        >>> app = Flask(__name__)
        >>> app.config['CMS_PROVIDER'] = 'baserow'
        >>> app.config['CMS_API_URL'] = 'https://api.baserow.io'
        >>>
        >>> content = FlaskContentService()
        >>> content.init_app(app)
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        super().__init__()
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Inicializa o serviço com uma aplicação Flask.

        Lê as chaves CMS_* do app.config e cria o provider.
        """
        logger = app.logger

        settings = ProviderSettings.from_mapping(app.config, logger=logger)
        self.init_config(settings, logger=logger)

        app.extensions["content_service"] = self

        logger.info("FlaskContentService initialized with Flask app")


def get_content_service(app: Optional[Flask] = None) -> FlaskContentService:
    """
    Helper para obter a instância do FlaskContentService.

    Args:
        app: Aplicação Flask (usa current_app se None)
    """
    if app is None:
        from flask import current_app

        app = current_app

    if "content_service" not in app.extensions:
        raise RuntimeError(
            "ContentService not found in app.extensions. "
            "Make sure to call content_service.init_app(app) first."
        )

    return cast(FlaskContentService, app.extensions["content_service"])
