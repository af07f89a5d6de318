from .errors import *
from .values import ResourceRef, RefTemplate, values_equal
from .model import Resource, ResourceGraph
from .provider import ProviderSchema, load_provider_schema
from .equivalence import EquivalenceResult, compare
