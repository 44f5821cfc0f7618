from polyfactory.factories.pydantic_factory import ModelFactory

from trade_scoring.domain.schemas import Quote, RatingFactor


class QuoteFactory(ModelFactory[Quote]):
    __model__ = Quote


class RatingFactorFactory(ModelFactory[RatingFactor]):
    __model__ = RatingFactor
