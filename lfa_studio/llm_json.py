# lfa_studio/llm_json.py

import logging
import re

import commentjson
import yaml
from json_repair import repair_json
from langchain_core.messages import HumanMessage

logger = logging.getLogger("lfa_studio.llm")

REPAIR_PROMPT = """
I encountered an issue while parsing the following JSON data. Here is the original JSON string:
```
{json_str}
```
The error message was: {error}
Can you fix it?

Please return the corrected JSON string and nothing else, as further comments would screw up the JSON parsing.
If you think the JSON is correct, please return the JSON as it is. Again, no further comments.
"""


class JsonParseError(ValueError):
    pass


def clean_triple_backticks(text: str) -> str:
    return re.sub(r"```[a-zA-Z]*\n?|```\n?", "", text)


def _sanitize_json_string(input_str: str) -> str:
    """
    Make a JSON-ish string palatable to YAML: drop // and /* */ comments and
    escape stray backslashes, newlines and quotes inside string literals.
    """

    def process_string_segment(match):
        content = match.group(1)
        content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r"\\\\", content)
        content = re.sub(r"(?<!\\)\n", r"\\n", content)
        content = re.sub(r'(?<!\\)"', r"\"", content)
        return f'"{content}"'

    input_str = clean_triple_backticks(input_str)
    input_str = re.sub(r"//.*?$|/\*.*?\*/", "", input_str, flags=re.MULTILINE | re.DOTALL)
    return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)


def _load_json(json_str: str):
    err = ""
    try:
        return commentjson.loads(clean_triple_backticks(json_str)), ""
    except Exception as e:
        err = str(e)
    try:
        data = yaml.safe_load(_sanitize_json_string(json_str))
        if isinstance(data, str):
            raise ValueError("YAML parsing produced a bare string")
        return data, ""
    except Exception as e:
        err += "\n--\n" + str(e)
    return None, err


def load_fault_tolerant_json(json_str: str, llm=None):
    """
    Parse model output that is supposed to be JSON.

    Tries, in order: commentjson, YAML on a sanitized copy, json_repair, and
    finally (when `llm` is given) asking the model to fix its own output.
    Raises JsonParseError when every attempt fails.
    """
    if not isinstance(json_str, str):
        raise JsonParseError(f"Expected model output as text, got {type(json_str).__name__}")

    data, err = _load_json(json_str)
    if data:
        return data
    r_data, r_err = _load_json(repair_json(json_str))
    if r_data:
        return r_data

    logger.warning("load_fault_tolerant_json: JSON parsing failed: %s", r_err or err)
    if llm is not None:
        prompt = REPAIR_PROMPT.format(json_str=json_str, error=r_err or err)
        repaired = llm.invoke([HumanMessage(content=prompt)])
        r_data, r_err = _load_json(repaired)
        if r_data:
            return r_data
    raise JsonParseError(f"load_fault_tolerant_json: JSON parsing failed: {r_err or err}")
