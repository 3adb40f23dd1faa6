from .base import Relation
from .has import HasOne, HasMany, HasOneThrough, HasManyThrough
from .belongs_to import BelongsTo
from .belongs_to_many import BelongsToMany, MorphToMany, MorphedByMany
from .morph import MorphOne, MorphMany, MorphTo
from .pivot import PivotManager
