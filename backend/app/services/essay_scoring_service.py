"""
Essay Scoring Service

Heuristic auto-scoring of free-text answers against a model answer.

Eight weighted layers each produce a ratio in [0, 1]; the weighted sum is
scaled to max_marks and then reduced by the gibberish and off-topic
penalties. Text processing uses nltk (regexp tokenizer, Porter stemmer,
bigrams, edit and Jaccard distances) and scikit-learn for the cosine
similarity of stem counts. No corpus downloads are needed.
"""

from typing import Any, Dict, List, Set, Tuple
import re

from nltk.metrics.distance import edit_distance, jaccard_distance
from nltk.stem import PorterStemmer
from nltk.tokenize import RegexpTokenizer
from nltk.util import bigrams
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging_config import logger

LAYER_WEIGHTS: Dict[str, float] = {
    "content": 0.20,
    "semantic": 0.20,
    "quality": 0.20,
    "writing": 0.15,
    "critical_thinking": 0.10,
    "technical": 0.08,
    "cognitive": 0.05,
    "conceptual": 0.02,
}

GIBBERISH_THRESHOLD = 0.5
GIBBERISH_FACTOR = 0.3
OFF_TOPIC_FACTOR = 0.5
FUZZY_MATCH_THRESHOLD = 0.8
TECHNICAL_TERM_MIN_LENGTH = 7

STOPWORDS = frozenset("""
a about above after again against all am an and any are as at be because been before being
below between both but by can could did do does doing down during each few for from further
had has have having he her here hers herself him himself his how i if in into is it its itself
just me more most my myself no nor not now of off on once only or other our ours ourselves out
over own same she should so some such than that the their theirs them themselves then there
these they this those through to too under until up very was we were what when where which
while who whom why will with would you your yours yourself yourselves also may might must shall
""".split())

REASONING_CONNECTIVES = (
    "because", "since", "as a result", "consequently", "therefore", "thus", "hence",
    "furthermore", "moreover", "in addition", "additionally",
    "however", "nevertheless", "on the other hand", "conversely", "although",
    "for example", "for instance", "such as", "in contrast", "similarly",
    "in conclusion", "in summary", "overall", "advantages", "disadvantages",
)

OFF_TOPIC_WORDS = frozenset({
    "recipe", "cooking", "chef", "kitchen", "food", "ingredients", "cook", "bake",
    "restaurant", "menu", "dish", "meal", "breakfast", "lunch", "dinner",
    "shopping", "store", "buy", "purchase", "price", "money", "cost",
    "movie", "film", "actor", "actress", "director", "cinema", "theater",
    "game", "gaming", "player", "level",
    "sports", "football", "basketball", "soccer", "tennis", "team",
    "music", "song", "singer", "band", "concert", "album", "lyrics",
    "fashion", "clothes", "dress", "shirt", "pants", "shoes", "style",
})

# (min off-topic count exclusive, max similarity exclusive, penalty)
OFF_TOPIC_TIERS: Tuple[Tuple[int, float, float], ...] = (
    (3, 0.2, 0.9),
    (2, 0.3, 0.7),
    (1, 0.4, 0.5),
    (0, 0.5, 0.2),
)

GRADE_TABLE = (
    (95, "A+"), (90, "A"), (85, "A-"), (80, "B+"), (75, "B"), (70, "B-"),
    (65, "C+"), (60, "C"), (55, "C-"), (50, "D+"), (45, "D"), (40, "D-"),
)

BAND_TABLE = (
    (95, "9.0"), (90, "8.5"), (85, "8.0"), (80, "7.5"), (75, "7.0"), (70, "6.5"),
    (65, "6.0"), (60, "5.5"), (55, "5.0"), (50, "4.5"), (45, "4.0"), (40, "3.5"),
    (35, "3.0"), (30, "2.5"), (25, "2.0"), (20, "1.5"), (15, "1.0"),
)

SENTENCE_SPLIT = re.compile(r"[.!?]+")
LONG_LETTER_RUN = re.compile(r"[a-z]{25,}")
REPEATED_CHARS = re.compile(r"(.)\1{4,}")
KEYBOARD_ROWS = re.compile(r"[qwertyuiop]{6,}|[asdfghjkl]{6,}|[zxcvbnm]{6,}")
VOWELS = set("aeiouy")


def grade_for(percentage: float) -> str:
    for threshold, grade in GRADE_TABLE:
        if percentage >= threshold:
            return grade
    return "F"


def band_for(percentage: float) -> str:
    for threshold, band in BAND_TABLE:
        if percentage >= threshold:
            return band
    return "0.0"


def _ratio(part: float, whole: float) -> float:
    return min(1.0, part / whole) if whole else 0.0


class AnalyzedText:
    """Tokens, stems and sentences of one answer"""

    def __init__(self, text: str, tokenizer: RegexpTokenizer, stemmer: PorterStemmer):
        self.text = text.strip()
        self.tokens: List[str] = tokenizer.tokenize(self.text.lower())
        self.words: List[str] = [t for t in self.tokens if t not in STOPWORDS and len(t) > 2]
        self.stems: List[str] = [stemmer.stem(w) for w in self.words]
        self.keywords: Set[str] = set(self.stems)
        self.sentences: List[str] = [s.strip() for s in SENTENCE_SPLIT.split(self.text) if s.strip()]


class EssayScoringService:
    """Scores essay answers; stateless apart from the nltk helpers"""

    def __init__(self):
        self.tokenizer = RegexpTokenizer(r"[A-Za-z0-9']+")
        self.stemmer = PorterStemmer()

    def analyze(self, text: str) -> AnalyzedText:
        return AnalyzedText(text or "", self.tokenizer, self.stemmer)

    # ==================== Layers ====================

    def content_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Recall of model keywords"""
        return _ratio(len(model.keywords & student.keywords), len(model.keywords))

    def semantic_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Cosine similarity of stem count vectors"""
        if not student.stems or not model.stems:
            return 0.0
        # Documents are already stemmed token lists
        counts = CountVectorizer(analyzer=lambda stems: stems).fit_transform([student.stems, model.stems])
        return min(1.0, float(cosine_similarity(counts[0], counts[1])[0][0]))

    def quality_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Length adequacy and shared phrasing"""
        adequacy = _ratio(len(student.tokens), len(model.tokens) * 0.7)
        model_bigrams = set(bigrams(model.stems))
        bigram_overlap = _ratio(len(model_bigrams & set(bigrams(student.stems))), len(model_bigrams))
        # Length only counts when the answer is about the topic
        adequacy *= min(1.0, 2 * self.content_ratio(student, model))
        return 0.4 * adequacy + 0.6 * bigram_overlap

    def writing_ratio(self, student: AnalyzedText) -> float:
        """Sentence length, capitalisation, closing punctuation and vocabulary diversity"""
        if not student.tokens:
            return 0.0
        sentences = student.sentences or [student.text]
        avg_len = len(student.tokens) / len(sentences)
        if avg_len < 8:
            shape = avg_len / 8
        elif avg_len <= 30:
            shape = 1.0
        else:
            shape = max(0.0, 1 - (avg_len - 30) / 30)

        capitalised = sum(1 for s in sentences if s[0].isupper()) / len(sentences)
        punctuation = 1.0 if student.text[-1] in ".!?" else 0.5
        diversity = _ratio(len(set(student.tokens)) / len(student.tokens), 0.6)
        return (shape + capitalised + punctuation + diversity) / 4

    def critical_thinking_ratio(self, student: AnalyzedText) -> float:
        """Distinct reasoning connectives used"""
        lowered = student.text.lower()
        used = sum(
            1 for phrase in REASONING_CONNECTIVES
            if re.search(r"\b" + re.escape(phrase) + r"\b", lowered)
        )
        return _ratio(used, 4)

    def technical_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Recall of the long, domain specific model terms"""
        terms = {
            self.stemmer.stem(w) for w in model.words if len(w) >= TECHNICAL_TERM_MIN_LENGTH
        }
        if not terms:
            return self.content_ratio(student, model)
        return _ratio(len(terms & student.keywords), len(terms))

    def cognitive_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Elaboration relative to the model answer"""
        return _ratio(len(student.sentences), max(1, len(model.sentences)))

    def conceptual_ratio(self, student: AnalyzedText, model: AnalyzedText) -> float:
        """Fuzzy keyword recall tolerant to misspellings"""
        model_words = set(model.words)
        student_words = set(student.words)
        if not model_words or not student_words:
            return 0.0
        matched = 0
        for target in model_words:
            for candidate in student_words:
                longest = max(len(target), len(candidate))
                if 1 - edit_distance(target, candidate) / longest >= FUZZY_MATCH_THRESHOLD:
                    matched += 1
                    break
        return matched / len(model_words)

    # ==================== Penalties ====================

    def gibberish_score(self, text: str) -> float:
        """0 for plain prose, approaching 1 for keyboard mashing"""
        lowered = text.lower()
        pattern_hits = (
            len(LONG_LETTER_RUN.findall(lowered))
            + len(REPEATED_CHARS.findall(lowered))
            + len(KEYBOARD_ROWS.findall(lowered))
        )
        alpha_tokens = [t for t in self.tokenizer.tokenize(lowered) if t.isalpha() and len(t) >= 3]
        vowelless = (
            sum(1 for t in alpha_tokens if not VOWELS & set(t)) / len(alpha_tokens)
            if alpha_tokens else 0.0
        )
        raw = 0.2 * pattern_hits + vowelless
        # Long answers are less likely to be mashing
        damped = raw * (1 - 0.5 * min(1.0, len(text) / 1000))
        return min(1.0, damped)

    def off_topic_penalty(self, student: AnalyzedText, model: AnalyzedText) -> float:
        model_tokens = set(model.tokens)
        off_topic_count = sum(
            1 for t in student.tokens if t in OFF_TOPIC_WORDS and t not in model_tokens
        )
        if not off_topic_count:
            return 0.0
        if student.keywords and model.keywords:
            similarity = 1 - jaccard_distance(student.keywords, model.keywords)
        else:
            similarity = 0.0
        for min_count, max_similarity, penalty in OFF_TOPIC_TIERS:
            if off_topic_count > min_count and similarity < max_similarity:
                return penalty
        return 0.0

    # ==================== Scoring ====================

    def _feedback(self, ratios: Dict[str, float], gibberish: float, off_topic: float) -> List[str]:
        feedback = []
        if ratios["content"] >= 0.7:
            feedback.append("Covers most of the key concepts")
        elif ratios["content"] < 0.4:
            feedback.append("Cover more of the key concepts from the expected answer")
        if ratios["semantic"] < 0.3:
            feedback.append("The answer does not closely follow the expected explanation")
        if ratios["writing"] < 0.5:
            feedback.append("Improve sentence structure and punctuation")
        if ratios["critical_thinking"] < 0.25:
            feedback.append("Explain reasoning with examples and connecting arguments")
        if ratios["technical"] >= 0.7:
            feedback.append("Good use of technical terminology")
        if gibberish > GIBBERISH_THRESHOLD:
            feedback.append("Parts of the answer appear to be random text")
        if off_topic > 0:
            feedback.append("The answer contains content unrelated to the question")
        return feedback or ["Good answer"]

    def score_essay(self, student_answer: str, model_answer: str, max_marks: float) -> Dict[str, Any]:
        if not (model_answer or "").strip():
            raise ValidationError("Model answer is required for essay scoring", field="model_answer")

        if not (student_answer or "").strip():
            return {
                "total_score": 0.0,
                "max_marks": max_marks,
                "percentage": 0.0,
                "is_passed": False,
                "grade": grade_for(0),
                "band": band_for(0),
                "feedback": ["No answer provided"],
                "breakdown": {},
            }

        student = self.analyze(student_answer)
        model = self.analyze(model_answer)

        ratios = {
            "content": self.content_ratio(student, model),
            "semantic": self.semantic_ratio(student, model),
            "quality": self.quality_ratio(student, model),
            "writing": self.writing_ratio(student),
            "critical_thinking": self.critical_thinking_ratio(student),
            "technical": self.technical_ratio(student, model),
            "cognitive": self.cognitive_ratio(student, model),
            "conceptual": self.conceptual_ratio(student, model),
        }

        layers = {}
        score = 0.0
        for name, ratio in ratios.items():
            layer_max = LAYER_WEIGHTS[name] * max_marks
            layer_score = ratio * layer_max
            score += layer_score
            layers[name] = {
                "score": round(layer_score, 2),
                "max": round(layer_max, 2),
                "ratio": round(ratio, 3),
            }
        base_score = score

        gibberish = self.gibberish_score(student_answer)
        if gibberish > GIBBERISH_THRESHOLD:
            score -= score * gibberish * GIBBERISH_FACTOR

        off_topic = self.off_topic_penalty(student, model)
        if off_topic > 0:
            score -= score * off_topic * OFF_TOPIC_FACTOR

        final = round(max(0.0, min(score, max_marks)), 2)
        percentage = round(final / max_marks * 100, 2) if max_marks else 0.0

        logger.debug(
            f"[EssayScoring] base={base_score:.2f} gibberish={gibberish:.2f} "
            f"off_topic={off_topic:.2f} final={final}/{max_marks}"
        )

        return {
            "total_score": final,
            "max_marks": max_marks,
            "percentage": percentage,
            "is_passed": percentage >= settings.ESSAY_PASS_PERCENTAGE,
            "grade": grade_for(percentage),
            "band": band_for(percentage),
            "feedback": self._feedback(ratios, gibberish, off_topic),
            "breakdown": {
                "layers": layers,
                "base_score": round(base_score, 2),
                "gibberish_score": round(gibberish, 3),
                "off_topic_penalty": off_topic,
            },
        }


# Singleton instance
essay_scoring_service = EssayScoringService()
