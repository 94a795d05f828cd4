from marshmallow import fields
from ramen.types.base import BaseSchema
from ramen.types.models.selector import LabelSelector, LabelSelectorRequirement


class LabelSelectorRequirementSchema(BaseSchema):
    __model__ = LabelSelectorRequirement

    key = fields.Str(data_key="key", required=True)
    operator = fields.Str(data_key="operator", required=True)
    values = fields.List(fields.Str(), data_key="values", load_default=list)


class LabelSelectorSchema(BaseSchema):
    __model__ = LabelSelector

    match_labels = fields.Dict(
        keys=fields.Str(),
        values=fields.Str(),
        data_key="matchLabels",
        load_default=dict,
    )
    match_expressions = fields.List(
        fields.Nested(LabelSelectorRequirementSchema),
        data_key="matchExpressions",
        load_default=list,
    )
