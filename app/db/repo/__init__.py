from app.db.repo.instructors_repo import InstructorsRepo
from app.db.repo.mentees_repo import MenteesRepo
from app.db.repo.mentorships_repo import MentorshipsRepo
from app.db.repo.offers_repo import OffersRepo
from app.db.repo.pending_joins_repo import PendingJoinsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.repo.rate_limit_tokens_repo import RateLimitTokensRepo
from app.db.repo.shortened_urls_repo import ShortenedUrlsRepo
from app.db.repo.url_analytics_repo import UrlAnalyticsRepo

__all__ = [
    "InstructorsRepo",
    "MenteesRepo",
    "MentorshipsRepo",
    "OffersRepo",
    "PendingJoinsRepo",
    "PurchasesRepo",
    "RateLimitTokensRepo",
    "ShortenedUrlsRepo",
    "UrlAnalyticsRepo",
]
