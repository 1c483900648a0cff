from .base import BasePublishAdapter
from .linkedin import LinkedInAdapter
from .pinterest import PinterestAdapter
from .reddit import RedditAdapter

__all__ = ["BasePublishAdapter", "LinkedInAdapter", "PinterestAdapter", "RedditAdapter"]
