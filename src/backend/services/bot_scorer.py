"""
Heuristic bot scoring.

Scores a request 0-100 from its headers alone. Every rule adds a fixed weight;
the total is capped at 100. There is no state: the same signals always give
the same score.
"""

from typing import Optional

from schemas.security import RequestSignals


class ScoringRules:
    """Rule weights and signatures."""

    AUTOMATION_SIGNATURES = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "curl",
        "wget",
        "python",
        "java",
        "apache",
        "http",
        "libwww",
        "perl",
        "php",
        "ruby",
        "go-http",
        "node",
        "axios",
        "requests",
    )
    BROWSER_MARKERS = ("mozilla", "chrome", "safari", "firefox", "edge")

    AUTOMATION_SIGNATURE = 30
    GENERIC_ACCEPT = 10
    MISSING_ACCEPT_LANGUAGE = 15
    MISSING_ACCEPT_ENCODING = 10
    MISSING_USER_AGENT = 25
    SHORT_USER_AGENT = 20
    NON_BROWSER_USER_AGENT = 15
    MISSING_REFERER = 5
    CONNECTION_CLOSE = 5
    POST_WITHOUT_XHR = 5

    SHORT_USER_AGENT_LENGTH = 20
    MAX_SCORE = 100


def _blank(value: Optional[str]) -> bool:
    return value is None or value == ""


class BotScorer:
    """Additive header heuristics."""

    def __init__(self, rules: type[ScoringRules] = ScoringRules):
        self.rules = rules

    def _fired(self, signals: RequestSignals) -> list[tuple[str, int]]:
        r = self.rules
        fired: list[tuple[str, int]] = []
        ua = signals.user_agent or ""
        ua_lower = ua.lower()

        for signature in r.AUTOMATION_SIGNATURES:
            if signature in ua_lower:
                fired.append((f"automation_signature:{signature}", r.AUTOMATION_SIGNATURE))
                break

        if _blank(signals.accept) or signals.accept == "*/*":
            fired.append(("generic_accept", r.GENERIC_ACCEPT))
        if _blank(signals.accept_language):
            fired.append(("missing_accept_language", r.MISSING_ACCEPT_LANGUAGE))
        if _blank(signals.accept_encoding):
            fired.append(("missing_accept_encoding", r.MISSING_ACCEPT_ENCODING))

        if not ua:
            fired.append(("missing_user_agent", r.MISSING_USER_AGENT))
        if len(ua) < r.SHORT_USER_AGENT_LENGTH:
            fired.append(("short_user_agent", r.SHORT_USER_AGENT))
        if ua and not any(marker in ua_lower for marker in r.BROWSER_MARKERS):
            fired.append(("non_browser_user_agent", r.NON_BROWSER_USER_AGENT))

        if not signals.referer_present and signals.path != "/":
            fired.append(("missing_referer", r.MISSING_REFERER))
        if (signals.connection or "").lower() == "close":
            fired.append(("connection_close", r.CONNECTION_CLOSE))
        if signals.method.upper() == "POST" and not signals.xhr_marker_present:
            fired.append(("post_without_xhr", r.POST_WITHOUT_XHR))

        return fired

    def score(self, signals: RequestSignals) -> int:
        """Score the request, 0 (human-looking) to 100 (certainly automated)."""
        total = sum(weight for _, weight in self._fired(signals))
        return min(total, self.rules.MAX_SCORE)

    def explain(self, signals: RequestSignals) -> list[str]:
        """Names of the rules that fired, in evaluation order."""
        return [name for name, _ in self._fired(signals)]


bot_scorer = BotScorer()
