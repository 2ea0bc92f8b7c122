from app.models.company import Company
from app.models.activity import Activity
from app.models.user import User
from app.models.product import Product
from app.models.stock import Stock, StockMovement
