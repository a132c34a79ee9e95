import uuid

from sqlalchemy import select

from app.core.security import encrypt_secret
from app.domain.models.destination import Destination
from app.domain.models.integration import Integration
from app.domain.models.media import Media, PostMedia
from app.domain.models.post import Post
from app.domain.models.post_caption import PostCaption
from app.domain.models.post_destination import PostDestination
from app.domain.models.product import PostProduct, Product
from app.domain.platforms import DestinationType
from app.infrastructure.db.session import SessionLocal

DEV_TENANT_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
DEV_CLIENT_ID = uuid.UUID("00000000-0000-4000-8000-000000000002")
DEV_PRODUCT_SLUG = "dev-sneaker"


def seed_dev_data() -> None:
    with SessionLocal() as db:
        existing_product = db.execute(
            select(Product).where(Product.tenant_id == DEV_TENANT_ID, Product.slug == DEV_PRODUCT_SLUG)
        ).scalar_one_or_none()
        if existing_product is not None:
            print(f"Seed exists: tenant_id={DEV_TENANT_ID}")
            return

        meta = Integration(
            tenant_id=DEV_TENANT_ID,
            client_id=DEV_CLIENT_ID,
            provider="meta",
            external_id="dev-meta-user",
            access_token=encrypt_secret("dev-meta-user-token"),
        )
        tiktok = Integration(
            tenant_id=DEV_TENANT_ID,
            client_id=DEV_CLIENT_ID,
            provider="tiktok",
            external_id="dev-tiktok-user",
            access_token=encrypt_secret("dev-tiktok-token"),
        )
        db.add_all([meta, tiktok])
        db.flush()

        page = Destination(
            tenant_id=DEV_TENANT_ID,
            client_id=DEV_CLIENT_ID,
            integration_id=meta.id,
            type=DestinationType.FACEBOOK_PAGE.value,
            external_id="100000000000001",
            name="Dev Page",
            access_token=encrypt_secret("dev-page-token"),
        )
        tiktok_account = Destination(
            tenant_id=DEV_TENANT_ID,
            client_id=DEV_CLIENT_ID,
            integration_id=tiktok.id,
            type=DestinationType.TIKTOK_ACCOUNT.value,
            external_id="dev-tiktok-account",
            name="Dev TikTok",
        )
        product = Product(tenant_id=DEV_TENANT_ID, slug=DEV_PRODUCT_SLUG, name="Dev Sneaker")
        image = Media(tenant_id=DEV_TENANT_ID, storage_reference="dev/sneaker.jpg", mime_type="image/jpeg")
        video = Media(tenant_id=DEV_TENANT_ID, storage_reference="dev/sneaker.mp4", mime_type="video/mp4")
        db.add_all([page, tiktok_account, product, image, video])
        db.flush()

        post = Post(tenant_id=DEV_TENANT_ID, client_id=DEV_CLIENT_ID)
        post.captions = [
            PostCaption(platform="facebook", caption="New drop is live", hashtags="#sneakers", include_link=True),
            PostCaption(platform="tiktok", caption="Unboxing the new drop", hashtags="#sneakers #fyp", position=1),
        ]
        post.media = [PostMedia(media_id=image.id, position=0), PostMedia(media_id=video.id, position=1)]
        post.products = [PostProduct(product_id=product.id, is_primary=True)]
        post.destinations = [
            PostDestination(destination_id=page.id),
            PostDestination(destination_id=tiktok_account.id, media_ids=[str(video.id)]),
        ]
        db.add(post)
        db.commit()

        print(f"Seed complete: tenant_id={DEV_TENANT_ID} post_id={post.id}")


if __name__ == "__main__":
    seed_dev_data()
