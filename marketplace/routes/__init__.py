from marketplace.routes.communities import communities_bp
from marketplace.routes.orders import orders_bp
from marketplace.routes.payments import payments_bp
from marketplace.routes.products import products_bp


def register_blueprints(app):
    app.register_blueprint(communities_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
