"""Category selection for a job run."""
import random
from typing import List, Optional, Tuple

from api.models.job import CategoryStrategyEnum
from shared.errors import ValidationError


def select_category(
    strategy: CategoryStrategyEnum,
    categories: List[str],
    last_index: int = 0,
    rng: Optional[random.Random] = None
) -> Tuple[str, int]:
    """
    Pick a category id and return it with the rotation index to persist.

    Fixed always picks the first category, Random picks uniformly and
    Rotate picks `categories[last_index]` and advances the cursor modulo
    the number of categories. Fixed and Random return `last_index` unchanged.
    """
    if not categories:
        raise ValidationError("job has no categories configured")

    strategy = CategoryStrategyEnum(strategy)
    count = len(categories)

    if strategy == CategoryStrategyEnum.FIXED:
        return categories[0], last_index

    if strategy == CategoryStrategyEnum.RANDOM:
        rng = rng or random
        return categories[rng.randrange(count)], last_index

    # Rotate; the stored cursor may be stale if the category list shrank
    current = last_index % count
    return categories[current], (current + 1) % count
