from typing import FrozenSet, List, Protocol, Sequence
from collections import Counter
import re

from support_context.domain.models.conversation import Message


DEFAULT_STOP_WORDS: FrozenSet[str] = frozenset({
    "o", "a", "de", "para", "com", "em", "que", "e", "é", "do", "da",
    "pelo", "pela", "mais", "como", "isso", "esse", "essa", "este", "esta",
    "isto", "aqui", "também", "porque", "quando", "onde", "estou", "está",
    "tenho", "minha", "vocês", "sobre",
})


class TopicExtractor(Protocol):
    """Strategy that turns held messages into a ranked topic list"""

    def extract(self, messages: Sequence[Message]) -> List[str]:
        ...


class FrequencyTopicExtractor:
    """Ranks keywords by how often they appear across the conversation"""

    def __init__(
        self,
        limit: int = 5,
        min_length: int = 4,
        stop_words: FrozenSet[str] = DEFAULT_STOP_WORDS
    ):
        self.limit = limit
        self.min_length = min_length
        self.stop_words = stop_words

    def tokenize(self, text: str) -> List[str]:
        return [
            word for word in re.findall(r'\w+', text.lower())
            if len(word) >= self.min_length and word not in self.stop_words
        ]

    def extract(self, messages: Sequence[Message]) -> List[str]:
        counts: Counter = Counter()
        for message in messages:
            counts.update(self.tokenize(message.content))

        # most_common keeps first-seen order among equal counts
        return [word for word, _ in counts.most_common(self.limit)]
