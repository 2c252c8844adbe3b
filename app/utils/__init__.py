from app.utils.helpers import api_response, error_response, get_data_context
from app.utils.decorators import user_required

__all__ = ['api_response', 'error_response', 'get_data_context', 'user_required']
