"""Word catalog: the static category -> words mapping rounds are drawn from."""

import json
import random
from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

from liarcard.models import LIAR_CARD


DEFAULT_WORDS: Dict[str, List[str]] = {
    'Animals': ['Elephant', 'Penguin', 'Giraffe', 'Dolphin', 'Kangaroo', 'Owl', 'Octopus', 'Tiger'],
    'Food': ['Pizza', 'Sushi', 'Croissant', 'Lasagna', 'Pancake', 'Taco', 'Fondue', 'Ratatouille'],
    'Sports': ['Football', 'Tennis', 'Surfing', 'Fencing', 'Rugby', 'Skiing', 'Judo', 'Golf'],
    'Jobs': ['Firefighter', 'Surgeon', 'Baker', 'Pilot', 'Lawyer', 'Plumber', 'Astronaut', 'Chef'],
    'Places': ['Beach', 'Library', 'Airport', 'Hospital', 'Museum', 'Casino', 'Desert', 'Prison'],
    'Objects': ['Umbrella', 'Toothbrush', 'Candle', 'Ladder', 'Mirror', 'Backpack', 'Scissors', 'Compass'],
    'Music': ['Guitar', 'Violin', 'Drums', 'Piano', 'Trumpet', 'Harp', 'Accordion', 'Saxophone'],
    'Transport': ['Bicycle', 'Submarine', 'Helicopter', 'Tram', 'Sailboat', 'Scooter', 'Rocket', 'Taxi'],
}


@dataclass(frozen=True)
class WordOption:
    word: str
    category: str

    def to_dict(self):
        return asdict(self)


class WordCatalog:
    def __init__(self, words: Dict[str, Sequence[str]]):
        # Drop empty categories and duplicate words, keep declared order
        self._words = {}
        for category, entries in words.items():
            unique = list(dict.fromkeys(
                w.strip() for w in entries
                if w and w.strip() and w.strip().upper() != LIAR_CARD
            ))
            if unique:
                self._words[category] = unique
        if not self._words:
            raise ValueError('Word catalog has no words')

    @classmethod
    def from_file(cls, path: str) -> 'WordCatalog':
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f'Word catalog {path} must map categories to word lists')
        return cls(data)

    def all_categories(self) -> List[str]:
        return list(self._words)

    def words_in(self, category: str) -> List[WordOption]:
        return [WordOption(word=w, category=category) for w in self._words.get(category, [])]

    def contains(self, word: str, category: str) -> bool:
        return word in self._words.get(category, ())

    def draw_options(self, rng: random.Random, categories: int = 2, words: int = 5) -> List[WordOption]:
        """Sample distinct categories, then up to ``words`` distinct words from each."""
        chosen = rng.sample(self.all_categories(), min(categories, len(self._words)))
        options: List[WordOption] = []
        for category in chosen:
            pool = self.words_in(category)
            options.extend(rng.sample(pool, min(words, len(pool))))
        return options


def load_catalog(app) -> WordCatalog:
    path = app.config.get('WORD_CATALOG_PATH')
    if path:
        app.logger.info(f"[catalog] loading words from {path}")
        return WordCatalog.from_file(path)
    return WordCatalog(DEFAULT_WORDS)


def get_catalog(app) -> WordCatalog:
    return app.extensions['word_catalog']
