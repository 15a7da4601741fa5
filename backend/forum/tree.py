"""
Comment tree assembly.

Comments use an adjacency list (parent_id) so all comments of a thread are
fetched in ONE query and the tree is built here in O(n) time and space.
The assembler is re-run on every full-thread fetch; nothing is cached.
"""
from dataclasses import dataclass, field


@dataclass
class CommentNode:
    comment: object
    replies: list = field(default_factory=list)

    @property
    def id(self):
        return self.comment.id


def build_comment_tree(comments):
    """
    Build a nested comment forest from a flat list.

    ``comments`` must already be sorted by created_at ascending; sibling
    order in the result follows input order.

    Algorithm:
    1. Create lookup dict: id -> node (each with an empty replies list)
    2. Walk the list again, attaching each comment to its parent
    3. A comment whose parent is not in the list (deleted concurrently)
       is surfaced as a root instead of being dropped
    4. A comment no root reaches (its parent chain loops) is detached from
       its parent and surfaced as a root too

    The input comments are not mutated, so the function is pure.
    """
    nodes = [CommentNode(comment) for comment in comments]
    node_map = {node.id: node for node in nodes}

    roots = []
    for node in nodes:
        parent_id = node.comment.parent_id
        parent = node_map.get(parent_id) if parent_id is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.replies.append(node)

    reached = set()
    _mark_reached(roots, reached)
    for node in nodes:
        if id(node) in reached:
            continue
        parent = node_map[node.comment.parent_id]
        parent.replies = [reply for reply in parent.replies if reply is not node]
        roots.append(node)
        _mark_reached([node], reached)

    return roots


def _mark_reached(forest, reached):
    stack = list(forest)
    while stack:
        node = stack.pop()
        if id(node) not in reached:
            reached.add(id(node))
            stack.extend(node.replies)


def count_nodes(forest):
    """Total number of comments in a forest."""
    return sum(1 + count_nodes(node.replies) for node in forest)
