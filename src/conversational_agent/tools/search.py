from conversational_agent.core.search import WebSearchClient
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    ToolResult,
)
from conversational_agent.interfaces.langchain.models import SearchWebInput
from conversational_agent.tools.registry import AgentTool, ToolName


class SearchWebTool(AgentTool):
    name = ToolName.SEARCH_WEB
    description = "Search the web for current information, news or links."
    args_schema = SearchWebInput

    def __init__(self, search_client: WebSearchClient):
        self.search_client = search_client

    async def execute(self, args: SearchWebInput, context: AgentContextState) -> ToolResult:
        results = await self.search_client.search(args.query)
        if not results:
            return ToolResult.failure(f"No search results for '{args.query}'")

        lines = []
        for index, row in enumerate(results, start=1):
            line = f"{index}. {row['title']} - {row['url']}"
            if row.get("snippet"):
                line += f"\n   {row['snippet']}"
            lines.append(line)
        return ToolResult(data="\n".join(lines))
