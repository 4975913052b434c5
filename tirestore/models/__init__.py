from tirestore.models.user import User, UserRole
from tirestore.models.address import Address
from tirestore.models.category import Category, product_categories
from tirestore.models.product import Product, ProductImage, ProductStatus
from tirestore.models.cart import CartItem
from tirestore.models.wishlist import WishlistItem
from tirestore.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from tirestore.models.review import Review, ReviewImage, ReviewHelpfulVote, ReviewStatus
from tirestore.models.blog import BlogPost, BlogComment, BlogSubscriber
from tirestore.models.newsletter import (
    CampaignProduct,
    CampaignType,
    NewsletterCampaign,
    NewsletterSubscription,
)
from tirestore.models.contact import ContactMessage
from tirestore.models.banner import Banner
from tirestore.models.system_setting import SystemSetting
from tirestore.models.token_blacklist import TokenBlacklist
