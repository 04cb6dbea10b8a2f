"""
AI Workflow Studio - A node-based engine for AI image, video and text workflows.

Usage:
    from ai_workflow_studio.core import NodeKind, Workflow

    workflow = Workflow.create("Cats")
    prompt = workflow.graph.create_node(NodeKind.PROMPT, prompt="a cat")
    image = workflow.graph.create_node(NodeKind.GENERATE_IMAGE)
    workflow.graph.connect(prompt.id, "text", image.id, "text")

    result = await workflow.executor().run_from(prompt.id)
"""

__version__ = "0.1.0"
