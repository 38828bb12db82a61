"""Prompt templates and builder for the CSV agent."""

from typing import List, Sequence

from .models import ResourceMetadata


def format_bytes(size: int) -> str:
    """Human-readable size using 1024-based units, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


class PromptBuilder:
    """Builder for constructing prompts for the LLM.

    Everything here is a pure function of its inputs, so the same resources
    always produce byte-for-byte the same prompt.
    """

    INTRO = (
        "You are a helpful AI assistant that can analyze CSV files and images. "
        "You have access to CSV analysis tools to help users understand their data. "
        "You can also analyze images that users upload with their messages using your vision capabilities.\n\n"
    )

    NO_RESOURCES = (
        "No CSV resources are currently available in this session.\n"
        "If the user asks about CSV data, inform them that no CSV files have been uploaded yet.\n"
    )

    TOOLS_SECTION = """
You have access to the following CSV analysis tools:
- load_csv_data: Load and parse a CSV file (use this first to inspect schema)
- execute_sql_query: Execute SQL SELECT queries on CSV data - USE THIS for all filtering, aggregation, searching, and complex analysis
  * Table name: "csv_data"
  * Every column is stored as text
  * Quote column names with spaces: SELECT "First Name", Age FROM csv_data
  * Supports: WHERE, GROUP BY, HAVING, ORDER BY, LIMIT, subqueries, and standard DuckDB SQL functions
  * Examples:
    - Filter: SELECT * FROM csv_data WHERE CAST(Age AS REAL) > 25 AND Department = 'Sales'
    - Aggregate: SELECT Department, AVG(CAST(Salary AS REAL)) as avg_salary FROM csv_data GROUP BY Department
    - Search: SELECT * FROM csv_data WHERE "First Name" ILIKE '%john%' (ILIKE ignores case)
    - Statistics: SELECT COUNT(*) as count, AVG(CAST(Age AS REAL)) as avg_age, MIN(CAST(Age AS REAL)) as min_age, MAX(CAST(Age AS REAL)) as max_age FROM csv_data
- filter_csv_rows, aggregate_csv_data, filter_and_aggregate_csv_data, get_csv_statistics, search_csv_text: structured alternatives for simple cases
When a user asks about CSV data:
1. Use load_csv_data first to inspect the schema (columns and row count)
2. Use execute_sql_query for all data analysis tasks (filtering, aggregation, searching, etc.)
3. Write SQL queries that match the user's request - SQL is powerful and can handle complex queries
4. Quote column names with spaces or special characters: "Column Name"
5. Use CAST(column AS REAL) for numeric operations on text columns
6. Provide clear, natural language explanations of your findings
7. If multiple CSVs are available, clarify which one you're analyzing
8. Use LIMIT to avoid returning too many rows

"""

    IMAGES_SECTION = """Image Analysis:
- Users can upload images (JPEG, PNG, WebP, GIF) along with their messages
- You can analyze images using your vision capabilities to understand their content
- When images are provided, describe what you see and answer questions about the images
- You can combine image analysis with CSV data analysis if both are relevant
- If multiple images are provided, analyze each one and note relationships between them

"""

    GUIDELINES_SECTION = """Important guidelines:
- If no CSV resources are available, inform the user and suggest uploading a CSV file
- If the user's query is unclear, ask clarifying questions
- Always provide context about which CSV file and columns you're analyzing
- Prefer execute_sql_query over individual filter/aggregate tools - SQL is more flexible
- Use quoted identifiers for column names with spaces: "First Name" not First Name
- Be concise but thorough in your analysis
- When analyzing images, provide detailed descriptions and insights
- If users upload images without text, analyze the images and describe what you see
"""

    @staticmethod
    def format_resources(resources: Sequence[ResourceMetadata]) -> str:
        """List the session's CSV resources with whatever metadata is known.

        Args:
            resources: Resources in the order they should be listed

        Returns:
            Formatted resource listing
        """
        if not resources:
            return PromptBuilder.NO_RESOURCES

        lines: List[str] = [
            f"The current session has {len(resources)} CSV resource(s) available:",
            "",
        ]
        for index, resource in enumerate(resources, start=1):
            lines.append(f"[CSV Resource {index}]")
            lines.append(f"- ID: {resource.id}")
            lines.append(f"- Filename: {resource.original_name}")
            lines.append(f"- Size: {format_bytes(resource.size_bytes)}")
            if resource.columns:
                lines.append(f"- Columns: {', '.join(resource.columns)}")
            if resource.row_count is not None:
                lines.append(f"- Row Count: {resource.row_count:,}")
            lines.append("")
        return "\n".join(lines) + "\n"

    @staticmethod
    def build_system_prompt(resources: Sequence[ResourceMetadata]) -> str:
        """Build the system prompt for a session's resources.

        Args:
            resources: CSV resources attached to the session

        Returns:
            Formatted system prompt
        """
        return (
            PromptBuilder.INTRO
            + PromptBuilder.format_resources(resources)
            + PromptBuilder.TOOLS_SECTION
            + PromptBuilder.IMAGES_SECTION
            + PromptBuilder.GUIDELINES_SECTION
        )
