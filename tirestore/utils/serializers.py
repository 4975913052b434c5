"""Model -> camelCase dict converters used by the API responses."""

from typing import Optional


def money(value) -> Optional[float]:
    return float(value) if value is not None else None


def image_to_dict(image) -> dict:
    return {
        "id": image.id,
        "imageUrl": image.image_url,
        "altText": image.alt_text,
        "isPrimary": bool(image.is_primary),
        "sortOrder": image.sort_order,
    }


def category_to_dict(category, product_count: Optional[int] = None) -> dict:
    data = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "icon": category.icon,
        "image": category.image,
        "parentId": category.parent_id,
        "isActive": bool(category.is_active),
        "sortOrder": category.sort_order,
        "createdAt": category.created_at,
    }
    if product_count is not None:
        data["productCount"] = product_count
    return data


def product_summary(product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "brand": product.brand,
        "model": product.model,
        "size": product.size,
        "sku": product.sku,
        "price": money(product.price),
        "comparePrice": money(product.compare_price),
        "stock": product.stock,
        "status": product.status,
        "image": product.primary_image,
    }


def product_to_dict(product, with_categories: bool = False) -> dict:
    data = {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "brand": product.brand,
        "model": product.model,
        "size": product.size,
        "sku": product.sku,
        "description": product.description,
        "price": money(product.price),
        "comparePrice": money(product.compare_price),
        "rating": money(product.rating),
        "stock": product.stock,
        "lowStockThreshold": product.low_stock_threshold,
        "status": product.status,
        "featured": bool(product.featured),
        "tireWidth": product.tire_width,
        "aspectRatio": product.aspect_ratio,
        "rimDiameter": product.rim_diameter,
        "loadIndex": product.load_index,
        "speedRating": product.speed_rating,
        "seasonType": product.season_type,
        "tireType": product.tire_type,
        "treadDepth": product.tread_depth,
        "construction": product.construction,
        "tireSoundVolume": product.tire_sound_volume,
        "saleStartDate": product.sale_start_date,
        "saleEndDate": product.sale_end_date,
        "isOnSale": product.is_on_sale,
        "features": product.features or [],
        "specifications": product.specifications or {},
        "tags": product.tags or [],
        "seoTitle": product.seo_title or "",
        "seoDescription": product.seo_description or "",
        "images": [image_to_dict(img) for img in product.images],
        "categoryIds": [category.id for category in product.categories],
        "createdAt": product.created_at,
        "updatedAt": product.updated_at,
    }
    if with_categories:
        data["categories"] = [
            {"id": c.id, "name": c.name, "slug": c.slug} for c in product.categories
        ]
    return data


def user_to_dict(user) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role.value,
        "isActive": bool(user.is_active),
        "emailVerified": bool(user.email_verified),
        "createdAt": user.created_at,
    }


def address_to_dict(address) -> dict:
    return {
        "id": address.id,
        "type": address.address_type,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "zipCode": address.zip_code,
        "country": address.country,
        "isDefault": bool(address.is_default),
        "createdAt": address.created_at,
    }


def order_item_to_dict(item) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "productName": item.product_name,
        "productSize": item.product_size,
        "productSku": item.product_sku,
        "quantity": item.quantity,
        "unitPrice": money(item.unit_price),
        "totalPrice": money(item.total_price),
    }


def order_to_dict(order, with_items: bool = True) -> dict:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "paymentIntentId": order.payment_intent_id,
        "userId": order.user_id,
        "userEmail": order.user_email,
        "userName": order.user_name,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "subtotal": money(order.subtotal),
        "tax": money(order.tax),
        "shipping": money(order.shipping),
        "total": money(order.total),
        "shippingAddress": order.shipping_address,
        "billingAddress": order.billing_address,
        "trackingNumber": order.tracking_number,
        "notes": order.notes,
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }
    if with_items:
        data["items"] = [order_item_to_dict(item) for item in order.items]
    return data


def review_to_dict(review, viewer_id: Optional[int] = None) -> dict:
    return {
        "id": review.id,
        "productId": review.product_id,
        "userId": review.user_id,
        "userName": review.user.name if review.user else None,
        "orderId": review.order_id,
        "rating": review.rating,
        "title": review.title,
        "comment": review.comment,
        "status": review.status,
        "isVerifiedPurchase": bool(review.is_verified_purchase),
        "helpfulCount": review.helpful_count or 0,
        "isOwn": viewer_id is not None and review.user_id == viewer_id,
        "images": [
            {"id": img.id, "imageUrl": img.image_url, "altText": img.alt_text}
            for img in review.images
        ],
        "createdAt": review.created_at,
        "updatedAt": review.updated_at,
    }


def blog_post_to_dict(post, with_content: bool = True) -> dict:
    data = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "excerpt": post.excerpt,
        "author": post.author,
        "status": post.status,
        "featured": bool(post.featured),
        "category": post.category,
        "tags": post.tag_list,
        "image": post.image,
        "readTime": post.read_time,
        "views": post.views or 0,
        "publishedAt": post.published_at,
        "createdAt": post.created_at,
        "updatedAt": post.updated_at,
    }
    if with_content:
        data["content"] = post.content
    return data


def blog_comment_to_dict(comment) -> dict:
    return {
        "id": comment.id,
        "postId": comment.post_id,
        "userId": comment.user_id,
        "authorName": comment.author_name,
        "authorEmail": comment.author_email,
        "content": comment.content,
        "status": comment.status,
        "createdAt": comment.created_at,
    }


def contact_to_dict(contact) -> dict:
    return {
        "id": contact.id,
        "name": contact.name,
        "email": contact.email,
        "phone": contact.phone,
        "subject": contact.subject,
        "message": contact.message,
        "inquiryType": contact.inquiry_type,
        "status": contact.status,
        "adminResponse": contact.admin_response,
        "clientIP": contact.client_ip,
        "userAgent": contact.user_agent,
        "createdAt": contact.created_at,
        "updatedAt": contact.updated_at,
    }


def subscription_to_dict(subscription) -> dict:
    return {
        "id": subscription.id,
        "email": subscription.email,
        "name": subscription.name,
        "status": subscription.status,
        "source": subscription.source,
        "tags": subscription.tags or [],
        "subscribedAt": subscription.subscribed_at,
        "unsubscribedAt": subscription.unsubscribed_at,
        "lastEmailSent": subscription.last_email_sent,
    }


def campaign_to_dict(campaign, with_products: bool = False) -> dict:
    data = {
        "id": campaign.id,
        "title": campaign.title,
        "subject": campaign.subject,
        "content": campaign.content,
        "status": campaign.status,
        "type": campaign.campaign_type,
        "scheduledAt": campaign.scheduled_at,
        "sentAt": campaign.sent_at,
        "recipientCount": campaign.recipient_count or 0,
        "openCount": campaign.open_count or 0,
        "clickCount": campaign.click_count or 0,
        "createdBy": campaign.created_by,
        "createdAt": campaign.created_at,
    }
    if with_products:
        data["products"] = [
            {**product_summary(link.product), "displayOrder": link.display_order}
            for link in campaign.products
            if link.product is not None
        ]
    return data


def banner_to_dict(banner) -> dict:
    return {
        "id": banner.id,
        "type": banner.banner_type,
        "src": banner.src,
        "headline": banner.headline,
        "subheadline": banner.subheadline,
        "description": banner.description,
        "sortOrder": banner.sort_order,
        "isActive": bool(banner.is_active),
        "createdAt": banner.created_at,
    }
