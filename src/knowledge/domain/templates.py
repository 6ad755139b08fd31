"""
Reply templates for automatic answers.

Templates use str.format placeholders. Only the fields in ReplyField are
allowed; anything else is rejected when the template is built, not when a
reply is rendered.
"""

import string
from dataclasses import dataclass
from typing import Optional

from src.core import ValidationException


class ReplyField(str):
    NAME = "name"
    ANSWER = "answer"


VALID_REPLY_FIELDS = [ReplyField.NAME, ReplyField.ANSWER]

DEFAULT_CLIENT_NAME = "клиент"

DEFAULT_AUTO_REPLY = (
    "Здравствуйте, {name}!\n\n"
    "{answer}\n\n"
    "Это автоматический ответ на основе похожего вопроса. "
    "Если он не помог, напишите нам, и оператор ответит вам."
)


@dataclass(frozen=True)
class ReplyFields:
    answer: str
    name: Optional[str] = None


class ReplyTemplate:
    """A validated greeting-plus-answer template."""

    def __init__(self, text: str, default_name: str = DEFAULT_CLIENT_NAME):
        self._text = text
        self._default_name = default_name
        self._fields = self._parse(text)

        if ReplyField.ANSWER not in self._fields:
            raise ValidationException("Reply template must contain the {answer} placeholder")

    @staticmethod
    def _parse(text: str) -> set:
        fields = set()
        try:
            parsed = list(string.Formatter().parse(text))
        except ValueError as e:
            raise ValidationException(f"Malformed reply template: {e}")

        for _literal, field_name, format_spec, conversion in parsed:
            if field_name is None:
                continue
            if field_name not in VALID_REPLY_FIELDS:
                raise ValidationException(
                    f"Unknown placeholder '{{{field_name}}}' in reply template",
                    {"allowed": VALID_REPLY_FIELDS}
                )
            if format_spec or conversion:
                raise ValidationException(
                    f"Placeholder '{{{field_name}}}' must not carry a format spec"
                )
            fields.add(field_name)
        return fields

    @property
    def text(self) -> str:
        return self._text

    def render(self, fields: ReplyFields) -> str:
        if not fields.answer or not fields.answer.strip():
            raise ValidationException("Cannot render a reply without an answer")

        name = (fields.name or "").strip() or self._default_name
        return self._text.format(name=name, answer=fields.answer.strip()).strip()
