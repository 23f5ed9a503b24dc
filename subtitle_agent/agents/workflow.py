from langgraph.graph import StateGraph, END

from subtitle_agent.agents.parser import parse_response
from subtitle_agent.agents.prompts import PromptBuilder
from subtitle_agent.agents.state import BatchState


def build_graph(model_caller, prompt_builder: PromptBuilder = None):
    """Build and compile the per-batch workflow graph (prompt -> translate -> parse)."""
    prompt_builder = prompt_builder or PromptBuilder()

    def prompt_node(state: BatchState):
        """Render system + user messages for the batch."""
        return {"messages": prompt_builder.build_messages(state["batch"], state.get("glossary") or {})}

    def translate_node(state: BatchState):
        """The only suspension point; ModelCallError propagates to the caller."""
        return {"raw_response": model_caller(state["messages"])}

    def parse_node(state: BatchState):
        return {"result": parse_response(state["raw_response"])}

    workflow = StateGraph(BatchState)

    workflow.add_node("prompt", prompt_node)
    workflow.add_node("translator", translate_node)
    workflow.add_node("parser", parse_node)

    workflow.set_entry_point("prompt")
    workflow.add_edge("prompt", "translator")
    workflow.add_edge("translator", "parser")
    workflow.add_edge("parser", END)

    return workflow.compile()


def initial_state(batch, glossary: dict) -> BatchState:
    return {
        "batch": batch,
        "glossary": glossary,
        "messages": None,
        "raw_response": None,
        "result": None,
    }
