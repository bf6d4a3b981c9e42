from app.db.models.instructors import Instructor
from app.db.models.mentees import Mentee
from app.db.models.mentorships import Mentorship
from app.db.models.offers import Offer
from app.db.models.pending_joins import PendingJoin
from app.db.models.purchases import Purchase
from app.db.models.rate_limit_tokens import RateLimitToken
from app.db.models.shortened_urls import ShortenedUrl
from app.db.models.url_analytics import UrlAnalytics

__all__ = [
    "Instructor",
    "Mentee",
    "Mentorship",
    "Offer",
    "PendingJoin",
    "Purchase",
    "RateLimitToken",
    "ShortenedUrl",
    "UrlAnalytics",
]
