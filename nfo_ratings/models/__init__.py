from nfo_ratings.models.ratings import RatingFetchResult, RatingRecord

__all__ = ["RatingFetchResult", "RatingRecord"]
