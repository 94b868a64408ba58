"""Tree Drawer - renders a reconciled deployment tree as an ASCII waterfall.

Example output:

    ⬤ rg-app/main
    ┃━━⬤ storageacct01
    ┃━━⬤ rg-app/network
    ┃  ┗━━⬤ vnet01
    ┃
    ┗━━⬤ rg-app/compute
       ┗━━⬤ vm01
"""

from deploy_waterfall.models import DeploymentNode


class TreeDrawer:
    """Draws deployments depth-first, resources before child deployments.

    Child deployments are ordered by end time so the branch that finished
    last is drawn last.
    """

    NODE = "⬤"
    BRANCH = "━━"
    CONTINUE = "┃"
    LAST = "┗"
    INDENT_CONTINUE = "┃  "
    INDENT_LAST = "   "

    def draw(self, tree: DeploymentNode) -> str:
        """Render the tree.

        Args:
            tree: Reconciled root deployment

        Returns:
            Newline-terminated lines of the waterfall
        """
        return self._draw(tree, not_last=False, previous_tree_start="", tree_start="")

    def _draw(
        self,
        tree: DeploymentNode,
        not_last: bool,
        previous_tree_start: str,
        tree_start: str,
    ) -> str:
        lines: list[str] = []

        prefix = ""
        if tree_start:
            glyph = self.CONTINUE if not_last else self.LAST
            prefix = f"{previous_tree_start}{glyph}{self.BRANCH}"
        lines.append(f"{prefix}{self.NODE} {tree.display_name}\n")

        has_children = bool(tree.child_deployments)
        for index, resource in enumerate(tree.resources):
            is_last = index == len(tree.resources) - 1 and not has_children
            glyph = self.LAST if is_last else self.CONTINUE
            lines.append(f"{tree_start}{glyph}{self.BRANCH}{self.NODE} {resource.name}\n")

        children = sorted(tree.child_deployments, key=lambda child: child.end_time)
        for index, child in enumerate(children):
            more_siblings = index < len(children) - 1
            indent = self.INDENT_CONTINUE if more_siblings else self.INDENT_LAST
            next_tree_start = f"{tree_start}{indent}"
            lines.append(self._draw(child, more_siblings, tree_start, next_tree_start))
            if more_siblings:
                lines.append(f"{next_tree_start.rstrip()}\n")

        return "".join(lines)
