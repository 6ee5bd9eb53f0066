import json
import re

from langchain_core.messages import AIMessage

_STAGE_RE = re.compile(r"^Stage:\s*(\S+)", re.MULTILINE)
_TOPIC_RE = re.compile(r"^Topic:\s*(.+)$", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"^Emphasis:\s*(.+)$", re.MULTILINE)


class MockStudyNoteLLM:
    """Offline chat model returning fixed-structure study-note stages."""

    async def ainvoke(self, prompt: str) -> AIMessage:
        stage_match = _STAGE_RE.search(prompt)
        topic_match = _TOPIC_RE.search(prompt)
        emphasis_match = _EMPHASIS_RE.search(prompt)
        stage = stage_match.group(1).strip() if stage_match else ""
        topic = topic_match.group(1).strip() if topic_match else "the topic"
        emphasis_raw = emphasis_match.group(1).strip() if emphasis_match else "none"
        emphasis = [] if emphasis_raw.lower() == "none" else [e.strip() for e in emphasis_raw.split(";") if e.strip()]
        builder = getattr(self, f"_{stage}", None)
        content = builder(topic, emphasis) if builder else ""
        return AIMessage(content=content)

    @staticmethod
    def _summary(topic: str, emphasis: list[str]) -> str:
        focus = ", ".join(emphasis) or "its central ideas"
        return "\n\n".join(
            [
                f"{topic} is a subject whose core ideas can be stated precisely and applied systematically.",
                f"These notes concentrate on {focus}, presenting each idea with a definition and an example.",
                f"A sound grasp of {topic} depends on distinguishing its terminology from related concepts.",
                "The review questions at the end progress from recall of facts to analysis of unfamiliar cases.",
            ]
        )

    @staticmethod
    def _key_terms(topic: str, emphasis: list[str]) -> str:
        terms = [{"term": topic, "definition": "The subject of these notes and the context for every other term."}]
        for item in emphasis:
            terms.append(
                {"term": item.title(), "definition": f"An aspect of {topic} that receives particular attention."}
            )
        return json.dumps(terms)

    @staticmethod
    def _body(topic: str, emphasis: list[str]) -> str:
        parts = [f"### Overview\n\n{topic} is introduced through its defining properties and typical uses."]
        for item in emphasis:
            parts.append(f"### {item.title()}\n\nThis subsection explains {item} and its role within {topic}.")
        return "\n\n".join(parts)

    @staticmethod
    def _questions(topic: str, emphasis: list[str]) -> str:
        focus = emphasis[0] if emphasis else topic
        return json.dumps(
            {
                "recall": [f"Define {topic}.", f"State the purpose of {focus}."],
                "comprehension": [f"Explain how {focus} relates to {topic}."],
                "application": [f"Apply {focus} to a short worked example."],
                "analysis": [f"Compare two approaches to {topic} and assess their trade-offs."],
            }
        )

    @staticmethod
    def _trailing(topic: str, emphasis: list[str]) -> str:
        return json.dumps(
            [
                {
                    "title": "Common Misconceptions",
                    "body": f"- {topic} is often confused with neighbouring concepts that share its vocabulary.",
                }
            ]
        )
