"""LLM prompts for job posting extraction."""

PAGE_CONTEXT = """Page: {title}
URL: {url}
Content: {content}"""

COMPANY_AND_POSITION_PROMPT = """Extract the hiring company name and job title/position from this job posting.
Fully copy and preserve the exact text as it appears on the page,
case-sensitive, do not change anything, do not rewrite, do not summarize, do not add anything.
IMPORTANT: Do not take data from metadata, only from the visible page content.

Return a JSON object with two fields: "company" and "position" accordingly.
If no company is found, use "unknown" for company.
If no position is found, use "unknown" for position.

IMPORTANT: Return ONLY valid JSON without any markdown formatting, code blocks, or extra text. Just the raw JSON object.

{context}

Return ONLY valid JSON:"""

JOB_DESCRIPTION_PROMPT = """EXTRACT the complete job description from the page content below.

TASK: Find and COPY the job description text exactly as it appears on the page.

WHAT TO EXTRACT:
- Job responsibilities and duties
- Required skills and qualifications
- Preferred skills and experience
- Technologies, tools, programming languages mentioned
- Company benefits and perks
- Work conditions
- Project descriptions
- Team information

INSTRUCTIONS:
1. READ the page content carefully
2. IDENTIFY all text that describes the job, requirements, benefits, etc.
3. COPY that text exactly - do NOT rewrite, summarize, or change anything
4. PRESERVE the original formatting, line breaks, and structure

Return a JSON object with field "jobDescription" containing the extracted job description text.
If no job description is found, return "unknown".

IMPORTANT: Return ONLY valid JSON without any markdown formatting, code blocks, or extra text. Just the raw JSON object.

{context}

Return ONLY valid JSON:"""


def build_extraction_prompts(title: str, url: str, content: str) -> dict[str, str]:
    """
    Собрать два независимых промпта для параллельного извлечения.

    Args:
        title: Заголовок страницы
        url: URL страницы
        content: Оптимизированный текст страницы

    Returns:
        Dict with ``company_and_position`` and ``job_description`` prompts
    """
    context = PAGE_CONTEXT.format(title=title, url=url, content=content)
    return {
        "company_and_position": COMPANY_AND_POSITION_PROMPT.format(context=context),
        "job_description": JOB_DESCRIPTION_PROMPT.format(context=context),
    }
