import argparse
import asyncio
import logging
import math
import sys

import pygame

from block_engine import STEP_DELAY, EventKind, StepEvent
from grid_world import BoardState
from program_tree import AtomicNode, BlockKind, Mode, RepeatNode, mode_allows
from session import GameSession

IS_WEB = sys.platform == "emscripten"

# ----- layout -----
TILE = 64
LEFT_W = 460
BOARD_PX = 6 * TILE
WIN_W = LEFT_W + BOARD_PX + 42
WIN_H = 640
FPS = 60

# ----- colors -----
BG = (26, 28, 35)
PANEL = (34, 37, 46)
BORDER = (60, 64, 75)
TEXT = (232, 235, 243)
MUTED = (170, 173, 184)
ACCENT = (255, 208, 80)
AGENT = (90, 170, 255)
OK = (44, 187, 93)
ERR = (235, 84, 84)
BTN = (45, 50, 62)
BTN_PRI = (52, 120, 246)
BTN_OFF = (38, 40, 48)
OBSTACLE = (120, 84, 60)
FLOOR = (243, 244, 248)
SELECT = (70, 78, 104)

PALETTE = [
    (BlockKind.FORWARD, "Forward"),
    (BlockKind.TURN_LEFT, "Left"),
    (BlockKind.TURN_RIGHT, "Right"),
    (BlockKind.REPEAT, "Repeat"),
    (BlockKind.UNTIL_OBSTACLE, "Until obst."),
    (BlockKind.UNTIL_BOUNDARY, "Until edge"),
    (BlockKind.UNTIL_GOAL, "Until goal"),
]

logger = logging.getLogger(__name__)


# ----- helpers -----
def clamp(v, a, b):
    return a if v < a else b if v > b else v


def pick_font(cands, size):
    avail = set(pygame.font.get_fonts())
    for n in cands:
        if n and n.lower() in avail:
            return pygame.font.SysFont(n, size)
    return pygame.font.Font(None, size)


MONO = ["consolas", "menlo", "dejavusansmono", "couriernew", "liberationmono", "monospace"]


# ----- program listing -----
class ProgramPanel:
    """Indented block listing; clicking a row selects it."""

    def __init__(self, rect, font):
        self.rect = pygame.Rect(rect)
        self.font = font
        self.selected = None
        self.scroll = 0
        self._rows = []

    def row_at(self, pos):
        if not self.rect.collidepoint(pos):
            return None
        inner = self.rect.inflate(-14, -14)
        idx = self.scroll + (pos[1] - inner.y) // self.font.get_linesize()
        if 0 <= idx < len(self._rows):
            return self._rows[idx][1]
        return None

    def click(self, pos):
        node = self.row_at(pos)
        if node is not None and node.id == self.selected:
            self.selected = None
        elif node is not None:
            self.selected = node.id

    def draw(self, surf, program):
        self._rows = program.outline()
        if self.selected is not None and self.selected not in program:
            self.selected = None
        pygame.draw.rect(surf, PANEL, self.rect, border_radius=8)
        pygame.draw.rect(surf, BORDER, self.rect, 1, border_radius=8)
        inner = self.rect.inflate(-14, -14)
        lh = self.font.get_linesize()
        max_vis = max(1, inner.h // lh)
        self.scroll = clamp(self.scroll, 0, max(0, len(self._rows) - max_vis))
        prev_clip = surf.get_clip()
        surf.set_clip(inner)
        if not self._rows:
            surf.blit(self.font.render("Add blocks from the palette...", True, MUTED), inner.topleft)
        for i, (depth, node) in enumerate(self._rows[self.scroll : self.scroll + max_vis]):
            y = inner.y + i * lh
            if node.id == self.selected:
                pygame.draw.rect(surf, SELECT, (inner.x, y, inner.w, lh), border_radius=4)
            label = f"{'    ' * depth}{node.describe()}"
            color = TEXT if isinstance(node, AtomicNode) else ACCENT
            surf.blit(self.font.render(label, True, color), (inner.x + 4, y))
        surf.set_clip(prev_clip)


# ----- logger (no overflow; clipped) -----
class Logger:
    def __init__(self, rect, font):
        self.rect = pygame.Rect(rect)
        self.font = font
        self.lines = []
        self.history_cap = 300

    def log(self, msg, color=MUTED):
        self.lines.append((str(msg), color))
        if len(self.lines) > self.history_cap:
            self.lines = self.lines[-self.history_cap :]

    def clear(self):
        self.lines = []

    def draw(self, surf):
        pygame.draw.rect(surf, PANEL, self.rect, border_radius=8)
        pygame.draw.rect(surf, BORDER, self.rect, 1, border_radius=8)
        inner = self.rect.inflate(-12, -12)
        lh = self.font.get_linesize()
        max_vis = max(1, inner.h // lh)
        view = self.lines[-max_vis:]
        prev_clip = surf.get_clip()
        surf.set_clip(inner)
        y = inner.y
        for line, color in view:
            surf.blit(self.font.render(line, True, color), (inner.x, y))
            y += lh
        surf.set_clip(prev_clip)


# ----- buttons -----
class Button:
    def __init__(self, rect, label, primary=False):
        self.rect = pygame.Rect(rect)
        self.label = label
        self.primary = primary
        self.enabled = True

    def draw(self, surf, font):
        if not self.enabled:
            fill = BTN_OFF
        else:
            fill = BTN_PRI if self.primary else BTN
        pygame.draw.rect(surf, fill, self.rect, border_radius=6)
        pygame.draw.rect(surf, BORDER, self.rect, 1, border_radius=6)
        pad = 10
        label = self.label
        while font.size(label)[0] > self.rect.w - pad and len(label) > 1:
            label = label[:-2] + "…"
        text = font.render(label, True, TEXT if self.enabled else MUTED)
        surf.blit(text, text.get_rect(center=self.rect.center))

    def hit(self, pos):
        return self.enabled and self.rect.collidepoint(pos)


# ----- drawing -----
def draw_board(surf, board: BoardState, area):
    x0, y0, w, h = area
    pygame.draw.rect(surf, PANEL, area, border_radius=8)
    pygame.draw.rect(surf, BORDER, area, 1, border_radius=8)
    size = board.grid_size * TILE
    offx = x0 + (w - size) // 2
    offy = y0 + (h - size) // 2
    for y in range(board.grid_size):
        for x in range(board.grid_size):
            r = pygame.Rect(offx + x * TILE, offy + y * TILE, TILE - 1, TILE - 1)
            pygame.draw.rect(surf, OBSTACLE if (x, y) in board.obstacles else FLOOR, r)
            if (x, y) == board.goal:
                pygame.draw.rect(
                    surf, ACCENT, r.inflate(-TILE * 0.2, -TILE * 0.2), border_radius=6
                )
    ax = offx + board.position[0] * TILE + TILE / 2
    ay = offy + board.position[1] * TILE + TILE / 2
    ang = [270, 0, 90, 180][board.facing]
    pts = [
        (
            ax + math.cos(math.radians(ang + a)) * TILE * 0.38,
            ay + math.sin(math.radians(ang + a)) * TILE * 0.38,
        )
        for a in (0, 140, -140)
    ]
    pygame.draw.polygon(surf, OK if board.position == board.goal else AGENT, pts)


# ----- app -----
class App:
    def __init__(self, seed=None, privileged=False, speed=None):
        pygame.init()
        pygame.display.set_caption("Block Maze")
        self.screen = pygame.display.set_mode((WIN_W, WIN_H))
        self.clock = pygame.time.Clock()
        self.font = pick_font(MONO, 18)
        self.small = pick_font(MONO, 15)

        # palette
        self.palette = []
        for i, (kind, label) in enumerate(PALETTE):
            col, row = i % 4, i // 4
            self.palette.append((kind, Button((14 + col * 110, 14 + row * 40, 102, 32), label)))

        # program controls
        y = 98
        self.btn_remove = Button((14, y, 102, 30), "Remove")
        self.btn_cnt_m = Button((124, y, 48, 30), "-")
        self.btn_cnt_p = Button((178, y, 48, 30), "+")
        self.btn_mode = Button((234, y, 212, 30), "Mode")

        # run controls
        y += 40
        self.btn_run = Button((14, y, 102, 34), "Run", primary=True)
        self.btn_stop = Button((124, y, 102, 34), "Stop")
        self.btn_next = Button((234, y, 102, 34), "Next")
        self.btn_reset = Button((344, y, 102, 34), "Reset")

        top = y + 48
        program_h = int((WIN_H - top - 14 - 12) * 0.55)
        self.program_view = ProgramPanel((14, top, LEFT_W - 28, program_h), self.small)
        log_y = top + program_h + 12
        self.log = Logger((14, log_y, LEFT_W - 28, WIN_H - log_y - 14), self.small)

        # model
        self.speed = speed or int(round(1.0 / STEP_DELAY))  # actions/s
        self.board = None
        self.session = GameSession(
            seed=seed,
            privileged=privileged,
            on_event=self.on_event,
            on_board=self.on_board,
        )
        self.board = self.session.board_state()
        self.log.log("Ready.")

    # session callbacks --------------------------------------------- #

    def on_event(self, event: StepEvent):
        if event.kind is EventKind.WON:
            self.log.log(event.message, OK)
        elif event.kind in (EventKind.LOST, EventKind.BLOCKED):
            self.log.log(event.message, ERR)
        else:
            self.log.log(event.message)

    def on_board(self, board: BoardState):
        self.board = board

    # input ---------------------------------------------------------- #

    def cycle_mode(self):
        modes = list(Mode)
        nxt = modes[(modes.index(self.session.mode) + 1) % len(modes)]
        self.session.set_mode(nxt)

    def bump_count(self, delta):
        node = self.session.program.find(self.program_view.selected or -1)
        if isinstance(node, RepeatNode):
            self.session.set_repeat_count(node.id, node.count + delta)

    def insert(self, kind):
        # Blocks go inside the selected container, else at the top level.
        parent = self.session.program.find(self.program_view.selected or -1)
        parent_id = None if parent is None or isinstance(parent, AtomicNode) else parent.id
        node = self.session.insert(kind, parent_id)
        if node is not None and not isinstance(node, AtomicNode):
            self.program_view.selected = node.id

    def click(self, pos):
        s = self.session
        for kind, btn in self.palette:
            if btn.hit(pos):
                self.insert(kind)
                return
        if self.btn_remove.hit(pos) and self.program_view.selected is not None:
            s.remove(self.program_view.selected)
        elif self.btn_cnt_m.hit(pos):
            self.bump_count(-1)
        elif self.btn_cnt_p.hit(pos):
            self.bump_count(+1)
        elif self.btn_mode.hit(pos):
            self.cycle_mode()
        elif self.btn_run.hit(pos):
            self.log.clear()
            s.run()
        elif self.btn_stop.hit(pos):
            s.abort()
        elif self.btn_next.hit(pos):
            self.log.clear()
            s.next_puzzle()
        elif self.btn_reset.hit(pos):
            self.log.clear()
            s.reset()
        else:
            self.program_view.click(pos)

    def refresh_buttons(self):
        s = self.session
        editable = not s.running and not s.attempted
        for kind, btn in self.palette:
            btn.enabled = editable and mode_allows(s.mode, kind)
        for btn in (self.btn_remove, self.btn_cnt_m, self.btn_cnt_p):
            btn.enabled = editable
        self.btn_mode.enabled = s.privileged and not s.running
        self.btn_mode.label = f"Mode: {s.mode.value}"
        self.btn_run.enabled = editable and not (s.locked and not s.privileged)
        self.btn_stop.enabled = s.running
        self.btn_next.enabled = not s.running and not (s.locked and not s.privileged)
        self.btn_reset.enabled = not s.running

    def status_line(self):
        s = self.session
        left = s.attempts_remaining()
        attempts = "unrestricted" if left is None else f"{left} left"
        state = "LOCKED" if s.locked and not s.privileged else s.state.value
        return f"Score: {s.score}   Attempts: {attempts}   Moves: {self.board.move_count}/{self.board.move_limit}   {state}"

    async def run(self):
        accum = 0.0
        while True:
            dt = self.clock.tick(FPS) / 1000.0
            accum += dt
            for e in pygame.event.get():
                if e.type == pygame.QUIT:
                    return
                if e.type == pygame.MOUSEBUTTONDOWN and e.button == 1:
                    self.click(e.pos)
                elif e.type == pygame.MOUSEWHEEL:
                    self.program_view.scroll -= e.y

            if self.session.running and accum >= 1.0 / float(self.speed):
                accum = 0.0
                self.session.step()

            # draw
            self.refresh_buttons()
            self.screen.fill(BG)
            buttons = [btn for _, btn in self.palette] + [
                self.btn_remove,
                self.btn_cnt_m,
                self.btn_cnt_p,
                self.btn_mode,
                self.btn_run,
                self.btn_stop,
                self.btn_next,
                self.btn_reset,
            ]
            for b in buttons:
                b.draw(self.screen, self.small)
            self.program_view.draw(self.screen, self.session.program)
            self.log.draw(self.screen)
            right = (LEFT_W, 14, WIN_W - LEFT_W - 14, WIN_H - 60)
            draw_board(self.screen, self.board, right)
            info = self.small.render(self.status_line(), True, MUTED)
            self.screen.blit(info, (LEFT_W, WIN_H - 36))
            pygame.display.flip()
            await asyncio.sleep(0)


# ----- entry -----
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Guide the agent to the goal with blocks.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for puzzle generation")
    parser.add_argument("--admin", action="store_true", help="Unrestricted mode selection")
    parser.add_argument("--speed", type=int, default=None, help="Commands per second")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every step")
    return parser.parse_args(argv)


async def main(args):
    app = App(seed=args.seed, privileged=args.admin, speed=args.speed)
    await app.run()


def cli(argv=None):
    args = parse_args([] if IS_WEB else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(main(args))
    finally:
        pygame.quit()


if __name__ == "__main__":
    cli()
