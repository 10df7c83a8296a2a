from .batch_routes import batch_blueprint
from .insights_routes import insights_blueprint
from .analytics_routes import analytics_blueprint

# Expose the blueprints so they can be imported from routes
__all__ = ['batch_blueprint', 'insights_blueprint', 'analytics_blueprint']
