"""Default captioning prompt (Chinese news-style title + description)."""
from __future__ import annotations

DEFAULT_TITLE_COUNT = 20
DEFAULT_CONTENT_COUNT = 30

TITLE_LABEL = "标题"
DESCRIPTION_LABEL = "描述"

PROMPT_TEMPLATE = """
请根据图片内容生成符合要求的文本描述，必须严格按照以下格式输出：

标题: [不超过{title_count}个字，需包含具体地点信息]
描述: [不超过{content_count}个字，需包含时间、地点、主要人物/主体、行为/事件等核心要素]

输出要求：
1. 内容必须完全基于图片信息，不得虚构或猜测
2. 时间描述应具体（如：2023年春天、上周三下午等），不确定时可写"近日"或"某天、秋季等笼统的时间词汇"
3. 地点需具体到城市或明确的场所（如：北京天安门广场、某小区花园等），若无法分辨地点则用环境特征代替（如：拥挤的集市、某片荒芜的平原等）
4. 人物描述仅限图片中清晰可辨的部分，不得虚构身份信息
5. 不得添加任何主观评价、修辞或额外解释
6. 严格遵守上述字数限制
7. 如果判断为艺术价值较高的摄影作品或绘画等艺术作品，需要更深入的进行鉴赏和剖析

示例:
标题: 北京迎来鼠年首场降雪
描述: 近日，北京迎来鼠年首场降雪。图片显示市民在雪中行走，街道被白雪覆盖。

请仅输出标题和描述两行内容，不要包含其他任何文字:"""


def build_prompt(title_count: int = DEFAULT_TITLE_COUNT, content_count: int = DEFAULT_CONTENT_COUNT) -> str:
    if title_count <= 0 or content_count <= 0:
        raise ValueError("title_count and content_count must be > 0")
    return PROMPT_TEMPLATE.format(title_count=title_count, content_count=content_count)


def resolve_prompt(prompt: str, title_count: int, content_count: int) -> str:
    """Use ``prompt`` when given, else the generated template."""
    if prompt:
        return prompt
    return build_prompt(title_count, content_count)
